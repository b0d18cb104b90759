"""
스타 잔액 / 거래 로그 데이터 모델

StarBalance는 identity(익명 디바이스 또는 로그인 계정)별 현재 잔액과
자동 충전(refill) 기록을 저장합니다. 잔액 변경은 모두 원자적 UPDATE로만
이루어지며, 변경 내역은 StarTransaction에 append-only로 기록됩니다.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import CheckConstraint, UniqueConstraint

from starledger.models.base import BaseModel


class IdentityKindEnum(enum.Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATED = "AUTHENTICATED"


class TransactionReasonEnum(enum.Enum):
    READING_COST = "reading_cost"
    READING_REFUND = "reading_refund"
    REFERRAL = "referral"
    REFERRAL_REWARD = "referral_reward"
    SHARE_AWARD = "share_award"
    MANUAL_ADD = "manual_add"
    MANUAL_SET = "manual_set"
    REFILL = "refill"
    INITIAL_GRANT = "initial_grant"
    IDENTITY_MERGE = "identity_merge"


class StarBalance(BaseModel):
    """
    identity별 스타 잔액

    - (identity_kind, identity_id)는 유니크
    - current_stars >= 0 (DB 제약으로도 보장)
    - version은 Set 등 compare-and-swap 갱신용 낙관적 잠금 카운터
    - merged_into_account_id가 있으면 계정으로 병합되어 더 이상 충전되지 않는 디바이스
    """

    __tablename__ = "star_balances"
    __table_args__ = (
        UniqueConstraint("identity_kind", "identity_id", name="uq_star_balance_identity"),
        CheckConstraint("current_stars >= 0", name="ck_star_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    identity_kind: Mapped[IdentityKindEnum] = mapped_column(
        Enum(IdentityKindEnum), nullable=False
    )
    identity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    current_stars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_refill_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    refill_cap: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    merged_into_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    merged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self):
        return (
            f"<StarBalance({self.identity_kind.value}:{self.identity_id}, "
            f"stars={self.current_stars}, v={self.version})>"
        )


class StarTransaction(BaseModel):
    """
    스타 거래 로그 - 불변, append-only

    현재 잔액 계산에는 사용하지 않으며 고객 지원/디버깅 용도입니다.
    """

    __tablename__ = "star_transactions"
    __table_args__ = (
        Index("idx_star_transactions_identity", "identity_kind", "identity_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    identity_kind: Mapped[IdentityKindEnum] = mapped_column(
        Enum(IdentityKindEnum), nullable=False
    )
    identity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # 양수=적립, 음수=차감
    reason: Mapped[TransactionReasonEnum] = mapped_column(
        Enum(TransactionReasonEnum, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
