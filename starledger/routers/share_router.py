"""
공유 방문 보상 API 라우터

- POST /shares/award: 공유 리딩 방문 보상 (방문자 요청)
- GET  /shares/earned-today: 오늘 공유로 받은 스타
- GET  /shares/notifications: 공유 방문 알림
"""

from typing import List, Optional

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Query

from starledger.containers import Container
from starledger.deps import get_current_identity, get_owner_aliases, get_request_device_id
from starledger.schemas.identity import Identity
from starledger.schemas.share import (
    EarnedTodayResponse,
    ShareAwardRequest,
    ShareAwardResponse,
    ShareNotificationsResponse,
)
from starledger.services.share_award_service import ShareAwardService

router = APIRouter(prefix="/shares", tags=["shares"])


@router.post("/award", response_model=ShareAwardResponse)
@inject
async def award_share_visit(
    request: ShareAwardRequest,
    visitor: Identity = Depends(get_current_identity),
    visitor_device_id: Optional[str] = Depends(get_request_device_id),
    share_service: ShareAwardService = Depends(Provide[Container.services.share_award_service]),
) -> ShareAwardResponse:
    """
    공유 방문 보상

    outcome:
        ok: 소유자에게 지급됨
        skipped: 본인 방문
        visitor_capped: 방문자의 오늘 보상 한도 소진
        duplicate: 같은 날 같은 공유 재방문
        owner_capped: 소유자의 오늘 공유 보상 한도 소진

    모든 outcome은 200 응답입니다. owner_user_id/owner_did가 모두 없으면 422.
    """
    return share_service.award_share_visit(
        shared_id=request.shared_id,
        visitor=visitor,
        owner_user_id=request.owner_user_id,
        owner_did=request.owner_did,
        visitor_device_id=visitor_device_id,
    )


@router.get("/earned-today", response_model=EarnedTodayResponse)
@inject
async def get_earned_today(
    owners: List[Identity] = Depends(get_owner_aliases),
    share_service: ShareAwardService = Depends(Provide[Container.services.share_award_service]),
) -> EarnedTodayResponse:
    """오늘(UTC+7 기준) 공유로 받은 스타 - 계정과 디바이스 합산, 일일 상한으로 clamp"""
    return share_service.earned_today(owners)


@router.get("/notifications", response_model=ShareNotificationsResponse)
@inject
async def get_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    owners: List[Identity] = Depends(get_owner_aliases),
    share_service: ShareAwardService = Depends(Provide[Container.services.share_award_service]),
) -> ShareNotificationsResponse:
    return share_service.list_notifications(owners, limit=limit, offset=offset)
