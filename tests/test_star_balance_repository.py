from datetime import timedelta

import pytest

from starledger.models.stars import StarBalance as StarBalanceModel, TransactionReasonEnum
from starledger.repositories.star_balance_repository import StarBalanceRepository
from starledger.repositories.star_transaction_repository import StarTransactionRepository
from starledger.schemas.identity import Identity
from starledger.services.refill_policy import RefillPolicy

DEVICE = Identity.device("0b5c7f5e-8a55-4a3d-9a57-3e0f6a1b2c3d")
ACCOUNT = Identity.account("acct-1")


@pytest.fixture
def repo(db_session):
    return StarBalanceRepository(db_session, policy=RefillPolicy())


@pytest.fixture
def tx_repo(db_session):
    return StarTransactionRepository(db_session)


class TestGetOrCreate:
    def test_new_device_starts_with_daily_grant(self, repo, clock):
        balance = repo.get_or_create(DEVICE, clock())

        assert balance.current_stars == 5
        assert balance.refill_cap == 5
        assert balance.last_refill_at == clock()
        assert balance.version == 0

    def test_new_account_starts_with_refill_cap(self, repo, clock):
        balance = repo.get_or_create(ACCOUNT, clock())

        assert balance.current_stars == 15
        assert balance.refill_cap == 15

    def test_second_call_returns_existing_row(self, repo, db_session, clock):
        repo.get_or_create(DEVICE, clock())
        repo.get_or_create(DEVICE, clock.advance(minutes=5))

        assert db_session.query(StarBalanceModel).count() == 1

    def test_initial_grant_is_logged(self, repo, tx_repo, clock):
        repo.get_or_create(ACCOUNT, clock())

        entries = tx_repo.list_for(ACCOUNT)
        assert len(entries) == 1
        assert entries[0].reason == "initial_grant"
        assert entries[0].amount == 15

    def test_concurrent_creation_falls_back_to_existing_row(self, repo, db_session, clock):
        # Given: 다른 요청이 먼저 행을 만든 상황 (find가 처음엔 None을 돌려줌)
        repo.get_or_create(DEVICE, clock())
        original_find = repo.find
        calls = {"n": 0}

        def racing_find(identity, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return original_find(identity, **kwargs)

        repo.find = racing_find

        # When
        balance = repo.get_or_create(DEVICE, clock())

        # Then
        assert balance.current_stars == 5
        assert db_session.query(StarBalanceModel).count() == 1


class TestSpend:
    def test_anonymous_spend_scenario(self, repo, clock):
        # 5 -> spend 2 -> 3 -> spend 4 fails, balance stays 3
        repo.get_or_create(DEVICE, clock())

        ok, balance = repo.spend(DEVICE, 2, clock())
        assert ok is True
        assert balance.current_stars == 3

        ok, balance = repo.spend(DEVICE, 4, clock())
        assert ok is False
        assert balance.current_stars == 3

    def test_balance_never_goes_negative(self, repo, clock):
        for _ in range(10):
            ok, balance = repo.spend(DEVICE, 2, clock())
            assert balance.current_stars >= 0

        assert repo.find(DEVICE).current_stars == 1

    def test_failed_spend_does_not_log(self, repo, tx_repo, clock):
        repo.spend(DEVICE, 99, clock())

        reasons = [e.reason for e in tx_repo.list_for(DEVICE)]
        assert reasons == ["initial_grant"]

    def test_spend_logs_reason_and_balance_after(self, repo, tx_repo, clock):
        repo.spend(DEVICE, 2, clock(), description="Reading - 2 stars")

        latest = tx_repo.list_for(DEVICE)[0]
        assert latest.reason == "reading_cost"
        assert latest.amount == -2
        assert latest.balance_after == 3
        assert latest.description == "Reading - 2 stars"

    def test_dropping_below_cap_restarts_refill_clock(self, repo, clock):
        repo.get_or_create(ACCOUNT, clock())
        spend_time = clock.advance(hours=10)

        repo.spend(ACCOUNT, 5, spend_time)

        balance = repo.find(ACCOUNT)
        assert balance.current_stars == 10
        assert balance.last_refill_at == spend_time

    def test_spend_below_cap_keeps_refill_progress(self, repo, clock):
        repo.get_or_create(ACCOUNT, clock())
        repo.spend(ACCOUNT, 5, clock())  # 15 -> 10, clock restarts at t0
        clock.advance(hours=1)

        repo.spend(ACCOUNT, 1, clock())

        assert repo.find(ACCOUNT).last_refill_at == clock() - timedelta(hours=1)


class TestLockRows:
    def test_rows_are_created_and_returned_in_fixed_order(self, repo, clock):
        # When: 호출 순서와 무관하게
        forward = repo.lock_rows([ACCOUNT, DEVICE], clock())
        backward = repo.lock_rows([DEVICE, ACCOUNT, DEVICE], clock())

        # Then: (kind, id) 순서로 잠금, 중복 제거, 없던 행은 생성
        assert [b.identity for b in forward] == [DEVICE, ACCOUNT]
        assert [b.identity for b in backward] == [DEVICE, ACCOUNT]
        assert forward[0].current_stars == 5
        assert forward[1].current_stars == 15


class TestRefresh:
    def test_authenticated_cap_is_stable(self, repo, clock):
        repo.get_or_create(ACCOUNT, clock())

        for _ in range(5):
            balance = repo.refresh(ACCOUNT, clock.advance(minutes=50))
            assert balance.current_stars == 15

    def test_authenticated_refill_after_one_interval(self, repo, clock):
        # Given: 10 stars at t0
        t0 = clock()
        repo.get_or_create(ACCOUNT, t0)
        repo.spend(ACCOUNT, 5, t0)

        # When: 2시간 경과
        balance = repo.refresh(ACCOUNT, clock.advance(hours=2))

        # Then
        assert balance.current_stars == 11
        assert balance.last_refill_at == t0 + timedelta(hours=2)

    def test_refresh_is_idempotent(self, repo, tx_repo, clock):
        repo.get_or_create(ACCOUNT, clock())
        repo.spend(ACCOUNT, 5, clock())
        now = clock.advance(hours=4, minutes=10)

        first = repo.refresh(ACCOUNT, now)
        second = repo.refresh(ACCOUNT, now)

        assert first.current_stars == second.current_stars == 12
        assert first.version == second.version
        refills = tx_repo.list_by_reason(ACCOUNT, TransactionReasonEnum.REFILL)
        assert len(refills) == 1
        assert refills[0].amount == 2

    def test_anonymous_daily_reset_preserves_bonus(self, repo, clock):
        repo.get_or_create(DEVICE, clock())
        repo.add(DEVICE, 4, clock())  # 9 stars

        balance = repo.refresh(DEVICE, clock.advance(days=1))

        assert balance.current_stars == 9

    def test_anonymous_daily_reset_restores_grant(self, repo, clock):
        repo.get_or_create(DEVICE, clock())
        repo.spend(DEVICE, 4, clock())

        balance = repo.refresh(DEVICE, clock.advance(days=1))

        assert balance.current_stars == 5


class TestAddAndSet:
    def test_add_can_exceed_cap(self, repo, clock):
        balance = repo.add(ACCOUNT, 5, clock(), reason=TransactionReasonEnum.REFERRAL)
        assert balance.current_stars == 20

    def test_add_applies_pending_refill_first(self, repo, clock):
        repo.get_or_create(ACCOUNT, clock())
        repo.spend(ACCOUNT, 5, clock())  # 10

        balance = repo.add(ACCOUNT, 1, clock.advance(hours=4))

        assert balance.current_stars == 13

    def test_set_with_matching_version(self, repo, tx_repo, clock):
        snapshot = repo.get_or_create(ACCOUNT, clock())

        ok, balance = repo.set_balance(ACCOUNT, 7, snapshot.version, clock())

        assert ok is True
        assert balance.current_stars == 7
        assert balance.version == snapshot.version + 1
        assert tx_repo.list_for(ACCOUNT)[0].reason == "manual_set"
        assert tx_repo.list_for(ACCOUNT)[0].amount == -8

    def test_set_with_stale_version_is_rejected(self, repo, clock):
        snapshot = repo.get_or_create(ACCOUNT, clock())
        repo.spend(ACCOUNT, 1, clock())  # concurrent change bumps version

        ok, balance = repo.set_balance(ACCOUNT, 100, snapshot.version, clock())

        assert ok is False
        assert balance.current_stars == 14


class TestRetireDevice:
    def test_retire_zeroes_device_and_returns_stars(self, repo, clock):
        repo.get_or_create(DEVICE, clock())

        transferred = repo.retire_device(DEVICE, ACCOUNT.id, clock())

        assert transferred == 5
        device = repo.find(DEVICE)
        assert device.current_stars == 0
        assert device.merged_into_account_id == ACCOUNT.id

    def test_retire_twice_is_noop(self, repo, clock):
        repo.get_or_create(DEVICE, clock())
        repo.retire_device(DEVICE, ACCOUNT.id, clock())

        assert repo.retire_device(DEVICE, ACCOUNT.id, clock()) is None

    def test_unknown_device_is_retired_with_zero_stars(self, repo, clock):
        assert repo.retire_device(DEVICE, ACCOUNT.id, clock()) == 0
        assert repo.find(DEVICE).is_retired

    def test_retired_device_does_not_refill_or_spend(self, repo, clock):
        repo.get_or_create(DEVICE, clock())
        repo.retire_device(DEVICE, ACCOUNT.id, clock())

        balance = repo.refresh(DEVICE, clock.advance(days=2))
        ok, _ = repo.spend(DEVICE, 1, clock())

        assert balance.current_stars == 0
        assert ok is False

    def test_credit_to_retired_device_goes_to_account(self, repo, clock):
        repo.get_or_create(DEVICE, clock())
        repo.retire_device(DEVICE, ACCOUNT.id, clock())

        balance = repo.add(DEVICE, 1, clock(), reason=TransactionReasonEnum.SHARE_AWARD)

        assert balance.identity == ACCOUNT
        assert balance.current_stars == 16
        assert repo.find(DEVICE).current_stars == 0
