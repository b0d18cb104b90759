from datetime import timedelta

import pytest

from starledger.config import Settings
from starledger.core.exceptions import AuthenticationError, InsufficientBalanceError
from starledger.schemas.identity import Identity
from starledger.services.spend_gate_service import SpendGateService
from starledger.services.star_service import StarService

DEVICE = Identity.device("6f1d2c3b-4a59-4e6f-8a7b-9c0d1e2f3a4b")
ACCOUNT = Identity.account("acct-42")


@pytest.fixture
def star_service(db_session, clock):
    return StarService(db_session, Settings(), clock=clock)


@pytest.fixture
def spend_gate(star_service):
    return SpendGateService(star_service)


class TestStarService:
    """StarService 테스트"""

    def test_get_balance_for_new_device(self, star_service, clock):
        # Act
        result = star_service.get_balance(DEVICE)

        # Assert
        assert result.current_stars == 5
        assert result.refill_cap == 5
        assert result.next_refill_at is None

    def test_next_refill_at_after_spend(self, star_service, clock):
        star_service.spend(ACCOUNT, 3)

        result = star_service.get_balance(ACCOUNT)

        assert result.current_stars == 12
        assert result.next_refill_at == clock() + timedelta(hours=2)

    def test_insufficient_spend_reports_shortfall(self, star_service):
        result = star_service.spend(DEVICE, 7)

        assert result.ok is False
        assert result.current_stars == 5
        assert result.required == 7
        assert result.shortfall == 2

    def test_set_requires_authenticated_account(self, star_service):
        with pytest.raises(AuthenticationError):
            star_service.set_balance(DEVICE, 3, 0)

    def test_set_returns_latest_version_on_conflict(self, star_service):
        version = star_service.get_balance(ACCOUNT).version
        star_service.add(ACCOUNT, 2)

        result = star_service.set_balance(ACCOUNT, 1, version)

        assert result.ok is False
        assert result.current_stars == 17
        assert result.version > version

    def test_transactions_are_paginated_newest_first(self, star_service):
        star_service.spend(DEVICE, 1)
        star_service.spend(DEVICE, 1)
        star_service.add(DEVICE, 3)

        page = star_service.get_transactions(DEVICE, limit=2, offset=0)

        assert page.balance == 6
        assert page.total_count == 4
        assert page.has_next is True
        assert [e.reason for e in page.entries] == ["manual_add", "reading_cost"]

        last_page = star_service.get_transactions(DEVICE, limit=2, offset=2)
        assert last_page.has_next is False
        assert [e.reason for e in last_page.entries] == ["reading_cost", "initial_grant"]


class TestSpendGate:
    """Spend Gate 테스트"""

    def test_charge_for_reading_uses_default_cost(self, spend_gate):
        result = spend_gate.charge_for_reading(DEVICE)

        assert result.ok is True
        assert result.current_stars == 3

    def test_denied_charge_mutates_nothing(self, spend_gate, star_service):
        spend_gate.charge_for_reading(DEVICE, 4)  # 5 -> 1

        result = spend_gate.charge_for_reading(DEVICE)

        assert result.ok is False
        assert result.required == 2
        assert star_service.get_balance(DEVICE).current_stars == 1

    def test_run_charged_returns_action_result(self, spend_gate, star_service):
        result = spend_gate.run_charged(DEVICE, lambda: "reading")

        assert result == "reading"
        assert star_service.get_balance(DEVICE).current_stars == 3

    def test_run_charged_refunds_when_action_fails(self, spend_gate, star_service):
        def failing_action():
            raise RuntimeError("reading generation failed")

        with pytest.raises(RuntimeError):
            spend_gate.run_charged(DEVICE, failing_action)

        assert star_service.get_balance(DEVICE).current_stars == 5
        reasons = [e.reason for e in star_service.get_transactions(DEVICE).entries]
        assert reasons[:2] == ["reading_refund", "reading_cost"]

    def test_run_charged_without_balance_skips_action(self, spend_gate):
        called = []

        with pytest.raises(InsufficientBalanceError) as exc_info:
            spend_gate.run_charged(DEVICE, lambda: called.append(True), cost=9)

        assert called == []
        assert exc_info.value.details["shortfall"] == 4
