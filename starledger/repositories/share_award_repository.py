"""
공유 방문 보상 / 알림 리포지토리
"""

from datetime import date, datetime
from typing import List, Sequence

from sqlalchemy import and_, desc, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from starledger.models.share import (
    ShareNotification as ShareNotificationModel,
    ShareVisitAward as ShareVisitAwardModel,
)
from starledger.repositories.base import BaseRepository
from starledger.schemas.identity import Identity
from starledger.schemas.share import ShareNotificationEntry


class ShareAwardRepository(BaseRepository[ShareVisitAwardModel, ShareNotificationEntry]):
    def __init__(self, db: Session):
        super().__init__(ShareVisitAwardModel, ShareNotificationEntry, db)

    def _owner_clause(self, owners: Sequence[Identity]):
        return or_(
            *[
                and_(
                    self.model_class.owner_kind == owner.kind.to_model(),
                    self.model_class.owner_id == owner.id,
                )
                for owner in owners
            ]
        )

    def count_visitor_awards(self, visitor: Identity, day: date) -> int:
        """방문자가 해당 일자에 보상을 발생시킨 횟수"""
        return (
            self.db.query(func.count(self.model_class.id))
            .filter(
                self.model_class.visitor_kind == visitor.kind.to_model(),
                self.model_class.visitor_id == visitor.id,
                self.model_class.date_key == day,
            )
            .scalar()
            or 0
        )

    def sum_owner_stars(self, owners: Sequence[Identity], day: date) -> int:
        """소유자가 해당 일자에 공유로 받은 스타 합계"""
        if not owners:
            return 0
        return (
            self.db.query(func.coalesce(func.sum(self.model_class.stars_awarded), 0))
            .filter(self._owner_clause(owners), self.model_class.date_key == day)
            .scalar()
            or 0
        )

    def award_exists(self, shared_id: str, visitor: Identity, day: date) -> bool:
        return (
            self.db.query(self.model_class.id)
            .filter(
                self.model_class.shared_id == shared_id,
                self.model_class.visitor_kind == visitor.kind.to_model(),
                self.model_class.visitor_id == visitor.id,
                self.model_class.date_key == day,
            )
            .first()
            is not None
        )

    def insert_award(
        self,
        shared_id: str,
        visitor: Identity,
        owner: Identity,
        day: date,
        stars: int,
    ) -> None:
        """
        보상 기록 삽입 (flush)

        (shared_id, visitor, date_key) 유니크 위반 시 IntegrityError가 그대로 전파됩니다.
        호출자는 이를 동시 중복 요청(duplicate)으로 처리해야 합니다.
        """
        award = self.model_class(
            shared_id=shared_id,
            visitor_kind=visitor.kind.to_model(),
            visitor_id=visitor.id,
            date_key=day,
            owner_kind=owner.kind.to_model(),
            owner_id=owner.id,
            stars_awarded=stars,
        )
        self.db.add(award)
        self.db.flush()

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def upsert_notification(
        self, owner: Identity, shared_id: str, day: date, visited_at: datetime
    ) -> None:
        """(owner, shared_id, date_key) 알림 방문 수 증가 또는 생성 후 커밋"""
        model = ShareNotificationModel
        clause = and_(
            model.owner_kind == owner.kind.to_model(),
            model.owner_id == owner.id,
            model.shared_id == shared_id,
            model.date_key == day,
        )
        increment = (
            update(model)
            .where(clause)
            .values(visits_count=model.visits_count + 1, last_visit_at=visited_at)
            .execution_options(synchronize_session=False)
        )

        if self.db.execute(increment).rowcount == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(
                        model(
                            owner_kind=owner.kind.to_model(),
                            owner_id=owner.id,
                            shared_id=shared_id,
                            date_key=day,
                            visits_count=1,
                            last_visit_at=visited_at,
                        )
                    )
            except IntegrityError:
                # 동시 생성 - 생성된 행에 증가 적용
                self.db.execute(increment)

        self.db.commit()

    def count_notifications(self, owners: Sequence[Identity]) -> int:
        if not owners:
            return 0
        return self._notification_query(owners).count()

    def list_notifications(
        self, owners: Sequence[Identity], limit: int = 20, offset: int = 0
    ) -> List[ShareNotificationEntry]:
        """소유자 알림 목록 (최근 방문순)"""
        if not owners:
            return []
        rows = (
            self._notification_query(owners)
            .order_by(
                desc(ShareNotificationModel.date_key),
                desc(ShareNotificationModel.last_visit_at),
                desc(ShareNotificationModel.id),
            )
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_schema(row) for row in rows]

    def _notification_query(self, owners: Sequence[Identity]):
        model = ShareNotificationModel
        return self.db.query(model).populate_existing().filter(
            or_(
                *[
                    and_(
                        model.owner_kind == owner.kind.to_model(),
                        model.owner_id == owner.id,
                    )
                    for owner in owners
                ]
            )
        )
