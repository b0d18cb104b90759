from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError

from starledger.config import settings
from starledger.core.exceptions import AuthenticationError


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


class TokenPayload(BaseModel):
    user_id: Union[int, str]
    sub: Optional[str] = None  # subject, typically user's email


def decode_access_token(token: str) -> str:
    """JWT 토큰을 검증하고 계정 ID(user_id 클레임)를 문자열로 반환합니다."""
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        token_data = TokenPayload.model_validate(payload)
    except (JWTError, ValidationError):
        raise AuthenticationError("Invalid authentication credentials")

    account_id = str(token_data.user_id).strip()
    if not account_id:
        raise AuthenticationError("Invalid authentication credentials")
    return account_id
