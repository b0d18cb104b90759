"""
Spend Gate - 유료 액션(리딩 생성 등) 앞단의 과금

잔액이 부족하면 아무것도 변경하지 않고 ok=False와 필요 스타 수를 돌려줍니다.
호출자는 이 결과로 액션을 거부합니다.
"""

import logging
from typing import Callable, Optional, TypeVar

from starledger.core.exceptions import InsufficientBalanceError
from starledger.models.stars import TransactionReasonEnum
from starledger.schemas.identity import Identity
from starledger.schemas.stars import StarSpendResponse
from starledger.services.star_service import StarService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SpendGateService:
    def __init__(self, star_service: StarService):
        self.star_service = star_service
        self.default_cost = star_service.settings.READING_COST_STARS

    def charge_for_reading(
        self, identity: Identity, cost: Optional[int] = None
    ) -> StarSpendResponse:
        cost = cost or self.default_cost
        result = self.star_service.spend(
            identity,
            cost,
            reason=TransactionReasonEnum.READING_COST,
            description=f"Reading - {cost} stars",
        )
        if not result.ok:
            logger.info(f"Reading denied for {identity}: {result.current_stars}/{cost} stars")
        return result

    def run_charged(
        self, identity: Identity, action: Callable[[], T], cost: Optional[int] = None
    ) -> T:
        """
        과금 후 액션 실행, 액션 실패 시 차감분 환불

        Raises:
            InsufficientBalanceError: 잔액 부족 (액션은 실행되지 않음)
        """
        cost = cost or self.default_cost
        result = self.charge_for_reading(identity, cost)
        if not result.ok:
            raise InsufficientBalanceError(required=cost, current=result.current_stars)

        try:
            return action()
        except Exception:
            logger.exception(f"Charged action failed for {identity}, refunding {cost} stars")
            self.star_service.add(
                identity,
                cost,
                reason=TransactionReasonEnum.READING_REFUND,
                description=f"Refund - {cost} stars",
            )
            raise
