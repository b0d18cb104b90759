from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends

from starledger.containers import Container
from starledger.deps import get_current_account
from starledger.schemas.identity import Identity
from starledger.schemas.referral import (
    ReferralCodeResponse,
    ReferralRedeemRequest,
    ReferralRedeemResponse,
)
from starledger.services.referral_service import ReferralService

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("/code", response_model=ReferralCodeResponse)
@inject
async def get_referral_code(
    account: Identity = Depends(get_current_account),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
) -> ReferralCodeResponse:
    """내 추천 코드 조회 (없거나 이미 사용된 경우 새로 발급)"""
    return referral_service.get_or_create_code(account)


@router.post("/redeem", response_model=ReferralRedeemResponse)
@inject
async def redeem_referral(
    request: ReferralRedeemRequest,
    account: Identity = Depends(get_current_account),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
) -> ReferralRedeemResponse:
    """
    추천 코드 사용 - 성공 시 추천인과 본인 모두 +5

    실패 outcome(ALREADY_USED, INVALID_CODE, SELF_REFERRAL, CODE_ALREADY_REDEEMED)도
    200 응답이며 success=false입니다.
    """
    return referral_service.redeem(account, request.code)
