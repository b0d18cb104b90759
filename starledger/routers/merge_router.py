from typing import Optional

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends

from starledger.containers import Container
from starledger.core.exceptions import ValidationError
from starledger.deps import get_current_account, get_request_device_id
from starledger.schemas.identity import Identity
from starledger.schemas.merge import MergeResponse
from starledger.services.identity_merge_service import IdentityMergeService

router = APIRouter(prefix="/identity", tags=["identity"])


@router.post("/merge", response_model=MergeResponse)
@inject
async def merge_device_into_account(
    account: Identity = Depends(get_current_account),
    device_id: Optional[str] = Depends(get_request_device_id),
    merge_service: IdentityMergeService = Depends(Provide[Container.services.identity_merge_service]),
) -> MergeResponse:
    """
    로그인 직후 호출 - 현재 디바이스의 익명 잔액을 계정으로 이전

    Bearer 토큰(계정)과 서명된 디바이스 쿠키가 모두 필요합니다.
    같은 디바이스로 다시 호출하면 merged=false로 아무것도 하지 않습니다.
    """
    if not device_id:
        raise ValidationError("A signed device id cookie is required to merge")
    return merge_service.merge_device_into_account(device_id, account.id)
