"""
Identity Resolver

요청마다 잔액 소유자를 결정합니다. Bearer 토큰의 계정이 항상 우선이며,
없으면 서명된 디바이스 쿠키를 사용합니다. 둘 다 없으면 NO_IDENTITY.
"""

import logging
from typing import Optional, Tuple

from starledger.config import Settings, settings as default_settings
from starledger.core.device_id import (
    generate_device_id,
    sign_device_id,
    verify_device_cookie,
)
from starledger.core.exceptions import NoIdentityError
from starledger.core.security import decode_access_token
from starledger.schemas.identity import Identity

logger = logging.getLogger(__name__)


class IdentityService:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def device_id_from_cookie(self, cookie_value: Optional[str]) -> Optional[str]:
        """서명 검증된 디바이스 ID (서명 불일치는 디바이스 없음으로 취급)"""
        device_id = verify_device_cookie(cookie_value, self.settings.DID_SIGNING_SECRET)
        if cookie_value and device_id is None:
            logger.warning("Ignoring device cookie with invalid signature")
        return device_id

    def account_id_from_token(self, token: Optional[str]) -> Optional[str]:
        """Bearer 토큰의 계정 ID. 토큰이 있으나 유효하지 않으면 AuthenticationError"""
        if not token:
            return None
        return decode_access_token(token)

    def resolve_optional(
        self, token: Optional[str], cookie_value: Optional[str]
    ) -> Optional[Identity]:
        account_id = self.account_id_from_token(token)
        if account_id:
            return Identity.account(account_id)

        device_id = self.device_id_from_cookie(cookie_value)
        if device_id:
            return Identity.device(device_id)
        return None

    def resolve(self, token: Optional[str], cookie_value: Optional[str]) -> Identity:
        identity = self.resolve_optional(token, cookie_value)
        if identity is None:
            raise NoIdentityError("Sign in or initialise a device id first")
        return identity

    def issue_device_cookie(self) -> Tuple[str, str]:
        """새 디바이스 ID와 서명된 쿠키 값"""
        device_id = generate_device_id()
        return device_id, sign_device_id(device_id, self.settings.DID_SIGNING_SECRET)
