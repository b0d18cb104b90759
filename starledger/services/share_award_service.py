"""
공유 방문 보상 서비스 (Virality Award Engine - share visit)

다른 사람이 공유된 리딩을 열면 리딩 소유자에게 스타를 지급합니다.
게이트는 아래 순서로 평가하며 처음 걸린 결과로 종료합니다:

1. 본인 방문 → skipped
2. 같은 날 같은 공유 재방문 → duplicate
3. 방문자 일일 상한 (모든 공유 합산) → visitor_capped
4. 소유자 일일 상한 (모든 공유 합산) → owner_capped

3, 4번은 방문자와 소유자 잔액 행을 (kind, id) 순서로 잠근 상태에서 검사합니다.

통과 시 보상 기록 삽입 + 소유자 적립을 한 트랜잭션으로 커밋하고,
알림 집계는 별도 트랜잭션에서 best-effort로 갱신합니다.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from starledger.config import Settings, settings as default_settings
from starledger.core.exceptions import ValidationError
from starledger.models.stars import TransactionReasonEnum
from starledger.repositories.share_award_repository import ShareAwardRepository
from starledger.schemas.identity import Identity
from starledger.schemas.share import (
    EarnedTodayResponse,
    ShareAwardOutcome,
    ShareAwardResponse,
    ShareNotificationsResponse,
)
from starledger.services.star_service import StarService
from starledger.utils.timezone_utils import date_key, utc_now

logger = logging.getLogger(__name__)


def owner_aliases(user_id: Optional[str], device_id: Optional[str]) -> List[Identity]:
    """소유자를 가리키는 모든 identity (계정 우선)"""
    aliases = []
    if user_id:
        aliases.append(Identity.account(user_id))
    if device_id:
        aliases.append(Identity.device(device_id))
    return aliases


class ShareAwardService:
    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        star_service: Optional[StarService] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock
        self.star_service = star_service or StarService(db, self.settings, clock=clock)
        self.share_repo = ShareAwardRepository(db)

    def _today(self, now: datetime):
        return date_key(now, self.settings.DAILY_RESET_UTC_OFFSET_HOURS)

    def award_share_visit(
        self,
        shared_id: str,
        visitor: Identity,
        owner_user_id: Optional[str] = None,
        owner_did: Optional[str] = None,
        visitor_device_id: Optional[str] = None,
    ) -> ShareAwardResponse:
        """
        공유 방문 보상

        Args:
            shared_id: 공유된 리딩 ID
            visitor: 방문자 identity (요청 identity)
            owner_user_id / owner_did: 리딩 소유자 (하나 이상 필수, 계정 우선 적립)
            visitor_device_id: 로그인 방문자의 디바이스 ID (본인 방문 판별용)

        Returns:
            ShareAwardResponse: outcome과 지급 시 소유자 잔액
        """
        owners = owner_aliases(owner_user_id, owner_did)
        if not owners:
            raise ValidationError("Share owner is required (owner_user_id or owner_did)")
        if not shared_id:
            raise ValidationError("shared_id is required")

        balance_repo = self.star_service.balance_repo
        award = self.settings.SHARE_AWARD_STARS
        now = self.clock()
        day = self._today(now)

        # 적립 대상 - 계정 우선, 병합된 디바이스는 병합 계정으로
        owner = owners[0]
        owner_row = balance_repo.find(owner)
        if owner_row and owner_row.is_retired:
            owner = Identity.account(owner_row.merged_into_account_id)
            if owner not in owners:
                owners.append(owner)

        visitors = {visitor}
        if visitor_device_id:
            visitors.add(Identity.device(visitor_device_id))

        # 1. 본인 방문
        if visitors & set(owners):
            logger.info(f"Share {shared_id}: self view by {visitor}, skipped")
            return ShareAwardResponse(outcome=ShareAwardOutcome.SKIPPED)

        # 2. 중복 방문 (잠금 없이 빠른 판정)
        if self.share_repo.award_exists(shared_id, visitor, day):
            logger.info(f"Share {shared_id}: duplicate visit by {visitor} on {day}")
            return ShareAwardResponse(outcome=ShareAwardOutcome.DUPLICATE)

        try:
            # 방문자/소유자 잔액 행을 고정 순서로 잠가 두 일일 상한 검사를 직렬화
            balance_repo.lock_rows([visitor, owner], now)

            # 대기 중 같은 방문이 먼저 기록되었을 수 있음
            if self.share_repo.award_exists(shared_id, visitor, day):
                self.db.rollback()
                logger.info(f"Share {shared_id}: duplicate visit by {visitor} on {day}")
                return ShareAwardResponse(outcome=ShareAwardOutcome.DUPLICATE)

            # 3. 방문자 일일 상한
            visitor_count = self.share_repo.count_visitor_awards(visitor, day)
            if visitor_count >= self.settings.SHARE_VISITOR_DAILY_CAP:
                self.db.rollback()
                logger.info(f"Share {shared_id}: visitor {visitor} capped ({visitor_count}) on {day}")
                return ShareAwardResponse(outcome=ShareAwardOutcome.VISITOR_CAPPED)

            # 4. 소유자 일일 상한
            earned = self.share_repo.sum_owner_stars(owners, day)
            if earned + award > self.settings.SHARE_OWNER_DAILY_CAP:
                self.db.rollback()
                logger.info(f"Share {shared_id}: owner {owner} capped ({earned} stars) on {day}")
                return ShareAwardResponse(outcome=ShareAwardOutcome.OWNER_CAPPED)

            try:
                self.share_repo.insert_award(shared_id, visitor, owner, day, award)
            except IntegrityError:
                # 동시 요청이 먼저 같은 (shared_id, visitor, date_key)를 기록함
                self.db.rollback()
                logger.info(f"Share {shared_id}: concurrent duplicate by {visitor} on {day}")
                return ShareAwardResponse(outcome=ShareAwardOutcome.DUPLICATE)

            balance = self.star_service.add(
                owner,
                award,
                reason=TransactionReasonEnum.SHARE_AWARD,
                description=f"Share visit - {shared_id}",
                commit=False,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to award share visit {shared_id} for {visitor}: {str(e)}")
            raise

        logger.info(
            f"Share {shared_id}: awarded {award} star(s) to {balance.identity} for visit by {visitor}"
        )
        self._notify_owner(balance.identity, shared_id, day, now)
        return ShareAwardResponse(
            outcome=ShareAwardOutcome.OK, owner_balance=balance.current_stars
        )

    def _notify_owner(self, owner: Identity, shared_id: str, day, now: datetime) -> None:
        """알림 집계 갱신 - 실패해도 이미 커밋된 적립은 유지"""
        try:
            self.share_repo.upsert_notification(owner, shared_id, day, now)
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Share notification upsert failed for {owner}/{shared_id}: {str(e)}")

    def earned_today(self, owners: List[Identity]) -> EarnedTodayResponse:
        """소유자가 오늘 공유로 받은 스타 (일일 상한으로 clamp)"""
        day = self._today(self.clock())
        earned = self.share_repo.sum_owner_stars(owners, day)
        cap = self.settings.SHARE_OWNER_DAILY_CAP
        return EarnedTodayResponse(
            earned_stars=min(earned, cap), max_stars=cap, date_key=day
        )

    def list_notifications(
        self, owners: List[Identity], limit: int = 20, offset: int = 0
    ) -> ShareNotificationsResponse:
        return ShareNotificationsResponse(
            notifications=self.share_repo.list_notifications(owners, limit=limit, offset=offset),
            total_count=self.share_repo.count_notifications(owners),
        )
