import pytest

from starledger.config import Settings
from starledger.core.exceptions import ConflictError
from starledger.schemas.identity import Identity
from starledger.services.identity_merge_service import IdentityMergeService

DEVICE_ID = "2a9e4d1c-7b3f-4c8e-9d6a-5f1b0e2c3d4a"
ACCOUNT_ID = "acct-merge"


@pytest.fixture
def merge_service(db_session, clock):
    return IdentityMergeService(db_session, Settings(), clock=clock)


class TestIdentityMerge:
    def test_device_balance_moves_to_account(self, merge_service):
        star_service = merge_service.star_service
        star_service.spend(Identity.device(DEVICE_ID), 2)  # device 3

        result = merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        assert result.merged is True
        assert result.transferred_stars == 3
        assert result.account_stars == 18
        assert star_service.get_balance(Identity.device(DEVICE_ID)).current_stars == 0

    def test_second_merge_is_noop(self, merge_service):
        merge_service.star_service.get_balance(Identity.device(DEVICE_ID))
        merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        again = merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        assert again.merged is False
        assert again.transferred_stars == 0
        assert again.account_stars == 20

    def test_unknown_device_merges_nothing(self, merge_service):
        result = merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        assert result.merged is True
        assert result.transferred_stars == 0
        assert result.account_stars == 15

    def test_device_merged_elsewhere_conflicts(self, merge_service):
        merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        with pytest.raises(ConflictError):
            merge_service.merge_device_into_account(DEVICE_ID, "another-account")

    def test_retired_device_cannot_spend(self, merge_service):
        merge_service.star_service.get_balance(Identity.device(DEVICE_ID))
        merge_service.merge_device_into_account(DEVICE_ID, ACCOUNT_ID)

        result = merge_service.star_service.spend(Identity.device(DEVICE_ID), 1)

        assert result.ok is False
