from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class ReferralOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    ALREADY_USED = "ALREADY_USED"  # 이미 다른 코드를 사용한 계정
    INVALID_CODE = "INVALID_CODE"
    SELF_REFERRAL = "SELF_REFERRAL"
    CODE_ALREADY_REDEEMED = "CODE_ALREADY_REDEEMED"  # 다른 계정이 이미 사용한 코드


class ReferralCodeResponse(BaseModel):
    code: str = Field(..., description="추천 코드")
    created: bool = Field(..., description="이번 요청으로 새로 발급되었는지 여부")


class ReferralRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32, description="추천 코드")


class ReferralRedeemResponse(BaseModel):
    success: bool
    outcome: ReferralOutcome
    message: str
    stars_awarded: int = 0
    current_stars: Optional[int] = Field(None, description="성공 시 사용자 잔액")
