"""
추천 코드 리포지토리
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.orm import Session

from starledger.models.referral import Referral as ReferralModel
from starledger.repositories.base import BaseRepository


class ReferralRecord(BaseModel):
    id: int
    referral_code: str
    referrer_id: str
    referee_id: Optional[str] = None
    redeemed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_consumed(self) -> bool:
        return self.referee_id is not None


class ReferralRepository(BaseRepository[ReferralModel, ReferralRecord]):
    def __init__(self, db: Session):
        super().__init__(ReferralModel, ReferralRecord, db)

    def find_by_code(self, code: str) -> Optional[ReferralRecord]:
        row = (
            self.db.query(self.model_class)
            .filter(self.model_class.referral_code == code)
            .populate_existing()
            .first()
        )
        return self._to_schema(row)

    def find_by_referee(self, referee_id: str) -> Optional[ReferralRecord]:
        """계정이 사용한 추천 코드 (평생 최대 1개)"""
        row = (
            self.db.query(self.model_class)
            .filter(self.model_class.referee_id == referee_id)
            .first()
        )
        return self._to_schema(row)

    def find_open_code(self, referrer_id: str) -> Optional[ReferralRecord]:
        """추천인의 아직 사용되지 않은 코드"""
        row = (
            self.db.query(self.model_class)
            .filter(
                self.model_class.referrer_id == referrer_id,
                self.model_class.referee_id.is_(None),
            )
            .order_by(self.model_class.id.desc())
            .first()
        )
        return self._to_schema(row)

    def create_code(self, referrer_id: str, code: str) -> ReferralRecord:
        """
        새 코드 저장 후 커밋

        코드 충돌 시 IntegrityError가 전파되며, 호출자가 새 코드로 재시도합니다.
        """
        instance = self.model_class(referral_code=code, referrer_id=referrer_id)
        self.db.add(instance)
        self.db.commit()
        return self._to_schema(instance)

    def claim(self, code: str, referee_id: str, now: datetime) -> bool:
        """
        코드 사용 처리 - 미사용 코드일 때만 referee_id 설정

        Returns:
            True면 이번 호출이 코드를 점유함. False면 이미 다른 계정이 사용.
            referee_id 유니크 위반(계정이 다른 코드를 동시에 사용)은 IntegrityError로 전파.
        """
        stmt = (
            update(self.model_class)
            .where(
                self.model_class.referral_code == code,
                self.model_class.referee_id.is_(None),
            )
            .values(referee_id=referee_id, redeemed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1
