from pydantic import BaseModel, Field
from enum import Enum

from starledger.models.stars import IdentityKindEnum


class IdentityKind(str, Enum):
    """잔액 소유자 종류"""

    ANONYMOUS = "ANONYMOUS"  # 쿠키 기반 익명 디바이스
    AUTHENTICATED = "AUTHENTICATED"  # 로그인 계정

    def to_model(self) -> IdentityKindEnum:
        return IdentityKindEnum(self.value)


class Identity(BaseModel):
    """익명 디바이스 또는 로그인 계정 - 잔액 행의 키"""

    kind: IdentityKind = Field(..., description="identity 종류")
    id: str = Field(..., min_length=1, max_length=255, description="디바이스 ID 또는 계정 ID")

    model_config = {"frozen": True}

    @classmethod
    def device(cls, device_id: str) -> "Identity":
        return cls(kind=IdentityKind.ANONYMOUS, id=device_id)

    @classmethod
    def account(cls, account_id: str) -> "Identity":
        return cls(kind=IdentityKind.AUTHENTICATED, id=account_id)

    @property
    def is_authenticated(self) -> bool:
        return self.kind == IdentityKind.AUTHENTICATED

    def __str__(self) -> str:
        return f"{self.kind.value.lower()}:{self.id}"


class DeviceIdResponse(BaseModel):
    """디바이스 ID 확인 응답"""

    did: str | None = Field(None, description="검증된 디바이스 ID (없거나 서명 불일치 시 null)")


class DeviceInitResponse(BaseModel):
    ok: bool = True
