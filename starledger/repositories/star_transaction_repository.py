"""
스타 거래 로그 리포지토리

잔액 변경과 같은 트랜잭션 안에서 append-only로 기록합니다.
기록은 수정/삭제하지 않으며 잔액 계산에 사용하지 않습니다.
"""

from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from starledger.models.stars import (
    StarTransaction as StarTransactionModel,
    TransactionReasonEnum,
)
from starledger.repositories.base import BaseRepository
from starledger.schemas.identity import Identity
from starledger.schemas.stars import StarTransactionEntry


class StarTransactionRepository(
    BaseRepository[StarTransactionModel, StarTransactionEntry]
):
    def __init__(self, db: Session):
        super().__init__(StarTransactionModel, StarTransactionEntry, db)

    def _to_entry(self, model_instance: StarTransactionModel) -> StarTransactionEntry:
        return StarTransactionEntry(
            id=model_instance.id,
            amount=model_instance.amount,
            reason=model_instance.reason.value,
            description=model_instance.description,
            balance_after=model_instance.balance_after,
            created_at=model_instance.created_at,
        )

    def record(
        self,
        identity: Identity,
        amount: int,
        reason: TransactionReasonEnum,
        balance_after: int,
        description: Optional[str] = None,
    ) -> None:
        """거래 기록 추가 (flush만 수행 - 잔액 변경과 함께 커밋됨)"""
        entry = self.model_class(
            identity_kind=identity.kind.to_model(),
            identity_id=identity.id,
            amount=amount,
            reason=reason,
            description=description,
            balance_after=balance_after,
        )
        self.db.add(entry)
        self.db.flush()

    def _identity_query(self, identity: Identity):
        return self.db.query(self.model_class).filter(
            self.model_class.identity_kind == identity.kind.to_model(),
            self.model_class.identity_id == identity.id,
        )

    def count_for(self, identity: Identity) -> int:
        return self._identity_query(identity).count()

    def list_for(
        self, identity: Identity, limit: int = 50, offset: int = 0
    ) -> List[StarTransactionEntry]:
        """identity 거래 내역 (최신순)"""
        rows = (
            self._identity_query(identity)
            .order_by(desc(self.model_class.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_entry(row) for row in rows]

    def list_by_reason(
        self, identity: Identity, reason: TransactionReasonEnum
    ) -> List[StarTransactionEntry]:
        rows = (
            self._identity_query(identity)
            .filter(self.model_class.reason == reason)
            .order_by(desc(self.model_class.id))
            .all()
        )
        return [self._to_entry(row) for row in rows]
