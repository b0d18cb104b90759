from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Date, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from starledger.models.base import BaseModel
from starledger.models.stars import IdentityKindEnum


class ShareVisitAward(BaseModel):
    """
    공유 리딩 방문 보상 기록

    (shared_id, visitor, date_key) 유니크 제약이 같은 날 같은 공유에 대한
    중복 보상을 막는 멱등성 키입니다. 생성 후 수정/삭제하지 않습니다.
    """

    __tablename__ = "share_visit_awards"
    __table_args__ = (
        UniqueConstraint(
            "shared_id",
            "visitor_kind",
            "visitor_id",
            "date_key",
            name="uq_share_visit_award",
        ),
        Index("idx_share_visit_awards_visitor_day", "visitor_kind", "visitor_id", "date_key"),
        Index("idx_share_visit_awards_owner_day", "owner_kind", "owner_id", "date_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    shared_id: Mapped[str] = mapped_column(String(255), nullable=False)
    visitor_kind: Mapped[IdentityKindEnum] = mapped_column(
        Enum(IdentityKindEnum), nullable=False
    )
    visitor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    date_key: Mapped[date] = mapped_column(Date, nullable=False)  # UTC+7 기준 날짜
    owner_kind: Mapped[IdentityKindEnum] = mapped_column(
        Enum(IdentityKindEnum), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    stars_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ShareNotification(BaseModel):
    """소유자에게 보여줄 공유 방문 알림 (공유/일자별 집계)"""

    __tablename__ = "share_notifications"
    __table_args__ = (
        UniqueConstraint(
            "owner_kind", "owner_id", "shared_id", "date_key", name="uq_share_notification"
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    owner_kind: Mapped[IdentityKindEnum] = mapped_column(
        Enum(IdentityKindEnum), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    shared_id: Mapped[str] = mapped_column(String(255), nullable=False)
    date_key: Mapped[date] = mapped_column(Date, nullable=False)
    visits_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_visit_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
