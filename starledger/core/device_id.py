"""
익명 디바이스 식별자 (DID) 쿠키

쿠키 값 형식: `<uuid>.<base64url(HMAC-SHA256(uuid))>`
서명이 맞지 않는 쿠키는 "디바이스 없음"으로 취급합니다.
"""

import base64
import hashlib
import hmac
import uuid
from typing import Optional

from starledger.config import settings


def _sign(device_id: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), device_id.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def generate_device_id() -> str:
    return str(uuid.uuid4())


def sign_device_id(device_id: str, secret: Optional[str] = None) -> str:
    """쿠키에 저장할 서명된 값"""
    secret = secret or settings.DID_SIGNING_SECRET
    return f"{device_id}.{_sign(device_id, secret)}"


def verify_device_cookie(value: Optional[str], secret: Optional[str] = None) -> Optional[str]:
    """서명된 쿠키 값에서 디바이스 ID 추출 (형식/서명 오류 시 None)"""
    if not value or "." not in value:
        return None

    device_id, _, signature = value.rpartition(".")
    try:
        uuid.UUID(device_id)
    except ValueError:
        return None

    secret = secret or settings.DID_SIGNING_SECRET
    # bytes로 비교 (str 비교는 non-ASCII 입력에서 TypeError)
    expected = _sign(device_id, secret).encode()
    if not hmac.compare_digest(signature.encode("utf-8", "replace"), expected):
        return None
    return device_id
