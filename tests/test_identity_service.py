from datetime import timedelta

import pytest

from starledger.config import Settings
from starledger.core.device_id import sign_device_id, verify_device_cookie
from starledger.core.exceptions import AuthenticationError, NoIdentityError
from starledger.core.security import create_access_token
from starledger.schemas.identity import IdentityKind
from starledger.services.identity_service import IdentityService

DEVICE_ID = "9c2b7e4a-1d3f-4a5b-8c6d-7e8f9a0b1c2d"


@pytest.fixture
def identity_service():
    return IdentityService(Settings())


class TestDeviceCookie:
    def test_signed_cookie_round_trips(self):
        assert verify_device_cookie(sign_device_id(DEVICE_ID, "s3cret"), "s3cret") == DEVICE_ID

    def test_wrong_secret_is_rejected(self):
        assert verify_device_cookie(sign_device_id(DEVICE_ID, "s3cret"), "other") is None

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "no-dot",
            f"{DEVICE_ID}.",
            "not-a-uuid.c2lnbmF0dXJl",
            f"{DEVICE_ID}.tampered",
            f"{DEVICE_ID}.é",
        ],
    )
    def test_malformed_cookie_is_no_device(self, value):
        assert verify_device_cookie(value, "s3cret") is None


class TestIdentityResolver:
    def test_token_wins_over_device(self, identity_service):
        token = create_access_token({"user_id": "acct-7"})
        _, cookie = identity_service.issue_device_cookie()

        identity = identity_service.resolve(token, cookie)

        assert identity.kind == IdentityKind.AUTHENTICATED
        assert identity.id == "acct-7"

    def test_numeric_user_id_claim(self, identity_service):
        token = create_access_token({"user_id": 1234})

        assert identity_service.resolve(token, None).id == "1234"

    def test_device_cookie_without_token(self, identity_service):
        device_id, cookie = identity_service.issue_device_cookie()

        identity = identity_service.resolve(None, cookie)

        assert identity.kind == IdentityKind.ANONYMOUS
        assert identity.id == device_id

    def test_invalid_signature_counts_as_no_device(self, identity_service):
        with pytest.raises(NoIdentityError):
            identity_service.resolve(None, f"{DEVICE_ID}.forged")

    def test_nothing_presented(self, identity_service):
        with pytest.raises(NoIdentityError) as exc_info:
            identity_service.resolve(None, None)

        assert exc_info.value.error_code == "NO_IDENTITY"

    def test_expired_token_is_rejected(self, identity_service):
        token = create_access_token({"user_id": "acct-7"}, expires_delta=timedelta(minutes=-1))

        with pytest.raises(AuthenticationError):
            identity_service.resolve(token, None)

    def test_garbage_token_is_rejected(self, identity_service):
        with pytest.raises(AuthenticationError):
            identity_service.resolve("not-a-jwt", None)
