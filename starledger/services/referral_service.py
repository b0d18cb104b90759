"""
추천 코드 서비스 (Virality Award Engine - referral)

- 코드 발급: 추천인별 미사용 코드 재사용, 사용된 코드는 불변이므로 새 코드 발급
- 코드 사용: 코드 점유(claim) 후 추천인/피추천인 양쪽 적립을 한 트랜잭션으로 커밋
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from starledger.config import Settings, settings as default_settings
from starledger.core.exceptions import AuthenticationError, ValidationError
from starledger.models.stars import TransactionReasonEnum
from starledger.repositories.referral_repository import ReferralRepository
from starledger.schemas.identity import Identity
from starledger.schemas.referral import (
    ReferralCodeResponse,
    ReferralOutcome,
    ReferralRedeemResponse,
)
from starledger.services.star_service import StarService
from starledger.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 3

_MESSAGES = {
    ReferralOutcome.SUCCESS: "Referral bonus applied",
    ReferralOutcome.ALREADY_USED: "A referral code has already been used for this account",
    ReferralOutcome.INVALID_CODE: "Invalid referral code",
    ReferralOutcome.SELF_REFERRAL: "You cannot use your own referral code",
    ReferralOutcome.CODE_ALREADY_REDEEMED: "This referral code has already been redeemed",
}


def normalize_code(code: str) -> str:
    return code.strip().upper()


class ReferralService:
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
        self.referral_repo = ReferralRepository(db)

    def _generate_code(self) -> str:
        length = self.settings.REFERRAL_CODE_LENGTH
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))

    def _require_account(self, identity: Identity) -> str:
        if not identity.is_authenticated:
            raise AuthenticationError("Referrals require a signed-in account")
        return identity.id

    def get_or_create_code(self, identity: Identity) -> ReferralCodeResponse:
        """추천 코드 조회 또는 발급"""
        referrer_id = self._require_account(identity)

        existing = self.referral_repo.find_open_code(referrer_id)
        if existing:
            return ReferralCodeResponse(code=existing.referral_code, created=False)

        for attempt in range(MAX_CODE_ATTEMPTS):
            try:
                record = self.referral_repo.create_code(referrer_id, self._generate_code())
                logger.info(f"Issued referral code {record.referral_code} for account {referrer_id}")
                return ReferralCodeResponse(code=record.referral_code, created=True)
            except IntegrityError:
                self.db.rollback()
                if attempt == MAX_CODE_ATTEMPTS - 1:
                    logger.error(
                        f"Failed to generate unique referral code after {MAX_CODE_ATTEMPTS} attempts"
                    )
                    raise
                logger.warning(f"Referral code collision on attempt {attempt + 1}, retrying...")

    def _result(
        self, outcome: ReferralOutcome, current_stars: Optional[int] = None
    ) -> ReferralRedeemResponse:
        success = outcome == ReferralOutcome.SUCCESS
        return ReferralRedeemResponse(
            success=success,
            outcome=outcome,
            message=_MESSAGES[outcome],
            stars_awarded=self.settings.REFERRAL_BONUS_STARS if success else 0,
            current_stars=current_stars,
        )

    def redeem(self, identity: Identity, code: str) -> ReferralRedeemResponse:
        """
        추천 코드 사용

        검사 순서:
        1. 이미 추천 코드를 사용한 계정 → ALREADY_USED
        2. 존재하지 않는 코드 → INVALID_CODE
        3. 본인 코드 → SELF_REFERRAL
        4. 다른 계정이 이미 사용한 코드 → CODE_ALREADY_REDEEMED

        통과 시 코드를 점유하고 양쪽에 보너스를 적립합니다 (단일 트랜잭션).
        동시 요청으로 유니크 제약이 깨지면 에러 대신 결과 코드로 응답합니다.
        """
        referee_id = self._require_account(identity)
        code = normalize_code(code)
        if not code:
            raise ValidationError("Referral code is required")

        if self.referral_repo.find_by_referee(referee_id):
            return self._result(ReferralOutcome.ALREADY_USED)

        record = self.referral_repo.find_by_code(code)
        if record is None:
            logger.info(f"Invalid referral code {code} from account {referee_id}")
            return self._result(ReferralOutcome.INVALID_CODE)

        if record.referrer_id == referee_id:
            return self._result(ReferralOutcome.SELF_REFERRAL)

        if record.is_consumed:
            return self._result(ReferralOutcome.CODE_ALREADY_REDEEMED)

        bonus = self.settings.REFERRAL_BONUS_STARS
        try:
            try:
                claimed = self.referral_repo.claim(code, referee_id, self.clock())
            except IntegrityError:
                # 같은 계정이 다른 코드를 동시에 사용함 (referee_id 유니크)
                self.db.rollback()
                logger.info(f"Concurrent referral redemption by account {referee_id}")
                return self._result(ReferralOutcome.ALREADY_USED)

            if not claimed:
                self.db.rollback()
                return self._result(ReferralOutcome.CODE_ALREADY_REDEEMED)

            referee_balance = self.star_service.add(
                Identity.account(referee_id),
                bonus,
                reason=TransactionReasonEnum.REFERRAL,
                description=f"Referral bonus - code {code}",
                commit=False,
            )
            self.star_service.add(
                Identity.account(record.referrer_id),
                bonus,
                reason=TransactionReasonEnum.REFERRAL_REWARD,
                description=f"Referral reward - code {code}",
                commit=False,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to redeem referral code {code} for account {referee_id}: {str(e)}")
            raise

        logger.info(
            f"Referral {code}: referrer {record.referrer_id} and referee {referee_id} credited {bonus} stars each"
        )
        return self._result(ReferralOutcome.SUCCESS, referee_balance.current_stars)
