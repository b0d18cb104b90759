"""
스타 잔액 API 라우터

- GET  /stars/balance: 내 스타 잔액 (자동 충전 반영)
- POST /stars/refresh: 자동 충전 적용
- POST /stars/spend: 스타 차감
- POST /stars/charge-reading: 리딩 과금 (Spend Gate)
- POST /stars/add: 스타 적립 (내부 호출자 전용)
- POST /stars/set: 잔액 설정 (로그인 계정, version compare-and-swap)
- GET  /stars/transactions: 거래 내역

인증:
- Bearer 토큰 또는 서명된 디바이스 쿠키 중 하나 필요 (토큰 우선)
"""

import logging

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Query

from starledger.containers import Container
from starledger.deps import (
    get_current_account,
    get_current_identity,
    require_internal_caller,
)
from starledger.schemas.identity import Identity
from starledger.schemas.stars import (
    ChargeReadingRequest,
    StarAmountRequest,
    StarBalanceResponse,
    StarSetRequest,
    StarSetResponse,
    StarSpendResponse,
    StarTransactionsResponse,
)
from starledger.services.spend_gate_service import SpendGateService
from starledger.services.star_service import StarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stars", tags=["stars"])


@router.get("/balance", response_model=StarBalanceResponse)
@inject
async def get_balance(
    identity: Identity = Depends(get_current_identity),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarBalanceResponse:
    """
    내 스타 잔액 조회

    잔액 행이 없으면 시작 지급(비로그인 5, 로그인 15)으로 생성하고,
    마지막 충전 이후 경과 시간만큼 자동 충전을 반영한 값을 반환합니다.

    Returns:
        StarBalanceResponse: current_stars, next_refill_at, refill_cap, version

    HTTP Status:
        200: 성공
        400: identity 없음 (NO_IDENTITY)
        401: 잘못된 토큰
    """
    return star_service.get_balance(identity)


@router.post("/refresh", response_model=StarBalanceResponse)
@inject
async def refresh_balance(
    identity: Identity = Depends(get_current_identity),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarBalanceResponse:
    """자동 충전 적용 (여러 번 호출해도 결과 동일)"""
    balance = star_service.refresh_balance(identity)
    return star_service.to_response(balance)


@router.post("/spend", response_model=StarSpendResponse)
@inject
async def spend_stars(
    request: StarAmountRequest,
    identity: Identity = Depends(get_current_identity),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarSpendResponse:
    """
    스타 차감

    잔액 부족은 에러가 아닌 ok=false 응답이며 잔액은 변경되지 않습니다.
    """
    return star_service.spend(identity, request.amount)


@router.post("/charge-reading", response_model=StarSpendResponse)
@inject
async def charge_reading(
    request: ChargeReadingRequest,
    identity: Identity = Depends(get_current_identity),
    spend_gate: SpendGateService = Depends(Provide[Container.services.spend_gate_service]),
) -> StarSpendResponse:
    """
    리딩 과금 - cost 생략 시 기본 리딩 비용(2)

    ok=false면 클라이언트는 리딩을 진행하지 않고 required/shortfall을 안내합니다.
    """
    return spend_gate.charge_for_reading(identity, request.cost)


@router.post(
    "/add",
    response_model=StarBalanceResponse,
    dependencies=[Depends(require_internal_caller)],
)
@inject
async def add_stars(
    request: StarAmountRequest,
    identity: Identity = Depends(get_current_identity),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarBalanceResponse:
    """스타 적립 (자동 충전 상한과 무관) - 내부 호출자 전용 (INTERNAL_API_KEY 헤더)"""
    balance = star_service.add(identity, request.amount)
    return star_service.to_response(balance)


@router.post("/set", response_model=StarSetResponse)
@inject
async def set_balance(
    request: StarSetRequest,
    account: Identity = Depends(get_current_account),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarSetResponse:
    """
    잔액 절대값 설정 - 로그인 계정 전용

    expected_version은 /stars/balance 응답의 version입니다. 그 사이 잔액이
    바뀌었다면 ok=false와 최신 잔액/버전이 반환됩니다.
    """
    return star_service.set_balance(account, request.balance, request.expected_version)


@router.get("/transactions", response_model=StarTransactionsResponse)
@inject
async def get_transactions(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    identity: Identity = Depends(get_current_identity),
    star_service: StarService = Depends(Provide[Container.services.star_service]),
) -> StarTransactionsResponse:
    """
    스타 거래 내역 (최신순)

    사용 예시:
        GET /stars/transactions?limit=20&offset=0
    """
    return star_service.get_transactions(identity, limit=limit, offset=offset)
