"""
스타 잔액 서비스

Balance Store 위의 얇은 비즈니스 계층입니다. 모든 연산은 요청 identity
(익명 디바이스 또는 로그인 계정)에 대해 동일한 경로로 동작합니다.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from starledger.config import Settings, settings as default_settings
from starledger.core.exceptions import AuthenticationError, BaseAPIException
from starledger.models.stars import TransactionReasonEnum
from starledger.repositories.star_balance_repository import StarBalanceRepository
from starledger.repositories.star_transaction_repository import (
    StarTransactionRepository,
)
from starledger.schemas.identity import Identity
from starledger.schemas.stars import (
    StarBalance,
    StarBalanceResponse,
    StarSetResponse,
    StarSpendResponse,
    StarTransactionsResponse,
)
from starledger.services.refill_policy import RefillPolicy
from starledger.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


class StarService:
    """스타 잔액 조회/충전/차감/적립/설정"""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock
        self.policy = RefillPolicy.from_settings(self.settings)
        self.transactions_repo = StarTransactionRepository(db)
        self.balance_repo = StarBalanceRepository(
            db, policy=self.policy, transactions=self.transactions_repo
        )

    def to_response(self, balance: StarBalance) -> StarBalanceResponse:
        return StarBalanceResponse(
            current_stars=balance.current_stars,
            next_refill_at=(
                None
                if balance.is_retired
                else self.policy.next_refill_at(
                    balance.identity.kind, balance.current_stars, balance.last_refill_at
                )
            ),
            refill_cap=balance.refill_cap,
            version=balance.version,
        )

    def _rollback_and_log(self, action: str, identity: Identity, e: Exception) -> None:
        self.db.rollback()
        if isinstance(e, BaseAPIException):
            logger.warning(f"{action} failed for {identity}: {e.message}")
        else:
            logger.error(f"{action} failed for {identity}: {str(e)}")

    def get_balance(self, identity: Identity) -> StarBalanceResponse:
        """잔액 조회 - 밀린 자동 충전을 반영한 뒤 반환"""
        return self.to_response(self.refresh_balance(identity))

    def refresh_balance(self, identity: Identity) -> StarBalance:
        try:
            return self.balance_repo.refresh(identity, self.clock())
        except Exception as e:
            self._rollback_and_log("Refresh", identity, e)
            raise

    def spend(
        self,
        identity: Identity,
        amount: int,
        reason: TransactionReasonEnum = TransactionReasonEnum.READING_COST,
        description: Optional[str] = None,
    ) -> StarSpendResponse:
        """
        스타 차감 - 잔액 부족은 예외가 아니라 ok=False 결과

        실패 시 잔액은 변경되지 않으며 required/shortfall을 함께 반환합니다.
        """
        try:
            ok, balance = self.balance_repo.spend(
                identity, amount, self.clock(), reason=reason, description=description
            )
        except Exception as e:
            self._rollback_and_log("Spend", identity, e)
            raise

        if ok:
            logger.info(f"Spent {amount} stars for {identity}, balance {balance.current_stars}")
            return StarSpendResponse(ok=True, current_stars=balance.current_stars)

        logger.info(
            f"Insufficient stars for {identity}: required {amount}, has {balance.current_stars}"
        )
        return StarSpendResponse(
            ok=False,
            current_stars=balance.current_stars,
            required=amount,
            shortfall=max(amount - balance.current_stars, 0),
        )

    def add(
        self,
        identity: Identity,
        amount: int,
        reason: TransactionReasonEnum = TransactionReasonEnum.MANUAL_ADD,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> StarBalance:
        """스타 적립 (상한 무관 원자적 증가)"""
        try:
            balance = self.balance_repo.add(
                identity,
                amount,
                self.clock(),
                reason=reason,
                description=description,
                commit=commit,
            )
        except Exception as e:
            self._rollback_and_log("Add", identity, e)
            raise

        logger.info(
            f"Added {amount} stars to {balance.identity} ({reason.value}), balance {balance.current_stars}"
        )
        return balance

    def set_balance(
        self, identity: Identity, new_balance: int, expected_version: int
    ) -> StarSetResponse:
        """
        잔액 절대값 설정 - 로그인 계정 전용

        조회 시점의 version이 일치할 때만 적용되며, 불일치 시 ok=False와
        최신 잔액/버전을 돌려주어 클라이언트가 다시 시도할 수 있게 합니다.
        """
        if not identity.is_authenticated:
            raise AuthenticationError("Setting a balance requires a signed-in account")

        try:
            ok, balance = self.balance_repo.set_balance(
                identity, new_balance, expected_version, self.clock()
            )
        except Exception as e:
            self._rollback_and_log("Set", identity, e)
            raise

        if ok:
            logger.info(f"Set balance for {identity} to {new_balance} (v{balance.version})")
        else:
            logger.warning(
                f"Stale set for {identity}: expected v{expected_version}, current v{balance.version}"
            )
        return StarSetResponse(
            ok=ok, current_stars=balance.current_stars, version=balance.version
        )

    def get_transactions(
        self, identity: Identity, limit: int = 50, offset: int = 0
    ) -> StarTransactionsResponse:
        """거래 내역 조회 (최신순)"""
        balance = self.refresh_balance(identity)
        total_count = self.transactions_repo.count_for(identity)
        entries = self.transactions_repo.list_for(identity, limit=limit, offset=offset)
        return StarTransactionsResponse(
            balance=balance.current_stars,
            entries=entries,
            total_count=total_count,
            has_next=offset + len(entries) < total_count,
        )
