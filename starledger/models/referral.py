from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from starledger.models.base import BaseModel


class Referral(BaseModel):
    """
    추천 코드

    referee_id는 최초 유효 사용 시 한 번만 설정되고 이후 불변입니다.
    referee_id 유니크 제약으로 "계정당 평생 1회 사용"을 DB 레벨에서 보장합니다.
    (NULL은 유니크 비교 대상이 아니므로 미사용 코드는 여러 개 존재 가능)
    """

    __tablename__ = "referrals"
    __table_args__ = (Index("idx_referrals_referrer", "referrer_id"),)

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    referral_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    referrer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    referee_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
