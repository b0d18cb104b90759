import hmac
from typing import List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from starledger.config import settings
from starledger.core.exceptions import AuthenticationError, AuthorizationError
from starledger.schemas.identity import Identity

# Services
from starledger.services.identity_service import IdentityService

# JWT Bearer 토큰 스킴 (토큰 없이도 디바이스 쿠키로 접근 가능)
security = HTTPBearer(auto_error=False)


def get_identity_service() -> IdentityService:
    return IdentityService(settings=settings)


# ============================================================================
# Identity Dependencies
# ============================================================================


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_request_device_id(
    request: Request,
    identity_service: IdentityService = Depends(get_identity_service),
) -> Optional[str]:
    """서명 검증된 디바이스 쿠키의 ID (없으면 None)"""
    return identity_service.device_id_from_cookie(
        request.cookies.get(settings.DID_COOKIE_NAME)
    )


def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity_service: IdentityService = Depends(get_identity_service),
) -> Identity:
    """
    요청 identity 결정 - 로그인 계정 우선, 없으면 디바이스

    Raises:
        AuthenticationError: Bearer 토큰이 있으나 유효하지 않음 (401)
        NoIdentityError: 토큰도 유효한 디바이스 쿠키도 없음 (400)
    """
    return identity_service.resolve(
        _bearer_token(credentials), request.cookies.get(settings.DID_COOKIE_NAME)
    )


def get_current_account(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """로그인 계정 필수"""
    if not identity.is_authenticated:
        raise AuthenticationError("Authentication required")
    return identity


def get_owner_aliases(
    identity: Identity = Depends(get_current_identity),
    device_id: Optional[str] = Depends(get_request_device_id),
) -> List[Identity]:
    """현재 사용자를 가리키는 모든 identity (계정 + 디바이스)"""
    aliases = [identity]
    if device_id and Identity.device(device_id) != identity:
        aliases.append(Identity.device(device_id))
    return aliases


# ============================================================================
# Internal Caller Dependencies
# ============================================================================


def require_internal_caller(request: Request) -> None:
    """내부 호출자 전용 엔드포인트 - INTERNAL_API_KEY 헤더 검증"""
    expected = settings.INTERNAL_API_KEY
    provided = request.headers.get(settings.INTERNAL_AUTH_HEADER)
    if not expected or not provided:
        raise AuthorizationError("Internal caller required")
    if not hmac.compare_digest(provided.encode("utf-8", "replace"), expected.encode()):
        raise AuthorizationError("Internal caller required")
