from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from starledger.config import Settings
from starledger.core.exceptions import AuthenticationError
from starledger.models.stars import TransactionReasonEnum
from starledger.repositories.star_transaction_repository import StarTransactionRepository
from starledger.schemas.identity import Identity
from starledger.schemas.referral import ReferralOutcome
from starledger.services.referral_service import CODE_ALPHABET, ReferralService

REFERRER = Identity.account("referrer-1")
REFEREE = Identity.account("referee-1")


@pytest.fixture
def referral_service(db_session, clock):
    return ReferralService(db_session, Settings(), clock=clock)


@pytest.fixture
def abc123(referral_service):
    return referral_service.referral_repo.create_code(REFERRER.id, "ABC123")


class TestRedeem:
    def test_success_credits_both_then_already_used(self, referral_service, abc123):
        # When
        first = referral_service.redeem(REFEREE, "ABC123")

        # Then
        assert first.success is True
        assert first.outcome == ReferralOutcome.SUCCESS
        assert first.stars_awarded == 5
        assert first.current_stars == 20
        star_service = referral_service.star_service
        assert star_service.get_balance(REFERRER).current_stars == 20
        assert star_service.get_balance(REFEREE).current_stars == 20

        # When: 같은 계정이 다시 사용
        second = referral_service.redeem(REFEREE, "ABC123")

        # Then
        assert second.success is False
        assert second.outcome == ReferralOutcome.ALREADY_USED
        assert star_service.get_balance(REFEREE).current_stars == 20

    def test_credits_are_logged_with_referral_reasons(self, referral_service, db_session, abc123):
        referral_service.redeem(REFEREE, "abc123 ")

        tx_repo = StarTransactionRepository(db_session)
        assert len(tx_repo.list_by_reason(REFEREE, TransactionReasonEnum.REFERRAL)) == 1
        assert len(tx_repo.list_by_reason(REFERRER, TransactionReasonEnum.REFERRAL_REWARD)) == 1

    def test_self_referral_is_rejected(self, referral_service, abc123):
        result = referral_service.redeem(REFERRER, "ABC123")

        assert result.outcome == ReferralOutcome.SELF_REFERRAL
        assert referral_service.star_service.get_balance(REFERRER).current_stars == 15

    def test_unknown_code(self, referral_service):
        result = referral_service.redeem(REFEREE, "NOPE0000")

        assert result.outcome == ReferralOutcome.INVALID_CODE
        assert result.stars_awarded == 0

    def test_code_redeemed_by_someone_else(self, referral_service, abc123):
        referral_service.redeem(REFEREE, "ABC123")

        result = referral_service.redeem(Identity.account("referee-2"), "ABC123")

        assert result.outcome == ReferralOutcome.CODE_ALREADY_REDEEMED

    def test_already_used_is_checked_before_code(self, referral_service, abc123):
        referral_service.redeem(REFEREE, "ABC123")

        result = referral_service.redeem(REFEREE, "NOPE0000")

        assert result.outcome == ReferralOutcome.ALREADY_USED

    def test_anonymous_device_cannot_redeem(self, referral_service, abc123):
        with pytest.raises(AuthenticationError):
            referral_service.redeem(Identity.device("some-device"), "ABC123")

    def test_lost_claim_race_credits_nobody(self, referral_service, abc123):
        # Given: 다른 계정이 검사 직후 코드를 먼저 점유
        with patch.object(referral_service.referral_repo, "claim", return_value=False):
            result = referral_service.redeem(REFEREE, "ABC123")

        assert result.outcome == ReferralOutcome.CODE_ALREADY_REDEEMED
        assert referral_service.star_service.get_balance(REFERRER).current_stars == 15


class TestReferralCode:
    def test_code_format(self, referral_service):
        result = referral_service.get_or_create_code(REFERRER)

        assert result.created is True
        assert len(result.code) == 8
        assert set(result.code) <= set(CODE_ALPHABET)

    def test_open_code_is_reused(self, referral_service):
        first = referral_service.get_or_create_code(REFERRER)
        second = referral_service.get_or_create_code(REFERRER)

        assert second.code == first.code
        assert second.created is False

    def test_new_code_after_redemption(self, referral_service):
        first = referral_service.get_or_create_code(REFERRER)
        referral_service.redeem(REFEREE, first.code)

        second = referral_service.get_or_create_code(REFERRER)

        assert second.created is True
        assert second.code != first.code

    def test_collision_is_retried(self, referral_service):
        referral_service.referral_repo.create_code("someone", "TAKEN000")

        with patch.object(
            referral_service, "_generate_code", side_effect=["TAKEN000", "FRESH000"]
        ):
            result = referral_service.get_or_create_code(REFERRER)

        assert result.code == "FRESH000"

    def test_gives_up_after_three_collisions(self, referral_service):
        referral_service.referral_repo.create_code("someone", "TAKEN000")

        with patch.object(referral_service, "_generate_code", return_value="TAKEN000"):
            with pytest.raises(IntegrityError):
                referral_service.get_or_create_code(REFERRER)
