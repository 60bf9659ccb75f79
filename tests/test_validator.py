# =============================================================================
# Unit Tests — Validation Engine
# =============================================================================
#
# Runs ApiKeyValidator over in-memory stores with a fixed clock.
#
# Test groups:
#   1. Denial reasons and their order
#   2. Successful validation and usage accounting
#   3. Storage failures
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from keygate.db.models import KeyStatus, UserRole, UserStatus
from keygate.services.errors import StoreUnavailableError
from keygate.services.issuance import KeyIssuer
from keygate.services.validator import (
    ApiKeyValidator,
    Denied,
    ErrorKind,
    Granted,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def issuer(key_store, audit_recorder, clock):
    return KeyIssuer(key_store, audit_recorder, clock=clock)


@pytest.fixture
def validator(key_store, account_store, clock):
    return ApiKeyValidator(key_store, account_store, clock=clock)


@pytest.fixture
def alice(make_account):
    return make_account("alice@keygate.dev")


def _issue(issuer, account, days=30):
    return _run(issuer.issue(account.id, "test-key", days))


# ---------------------------------------------------------------------------
# 1. Denials
# ---------------------------------------------------------------------------


class TestDenials:
    @pytest.mark.parametrize("raw_key", [None, ""])
    def test_missing_key(self, validator, raw_key):
        assert _run(validator.validate(raw_key)) == Denied(ErrorKind.MISSING_KEY)

    def test_unknown_key(self, validator):
        verdict = _run(validator.validate("sk_" + "0" * 48))
        assert verdict == Denied(ErrorKind.INVALID_KEY)
        assert verdict.valid is False

    def test_expired_key(self, validator, issuer, alice, clock):
        issued = _issue(issuer, alice, days=1)
        clock.advance(days=1, seconds=1)
        assert _run(validator.validate(issued.raw_key)) == Denied(ErrorKind.EXPIRED)

    def test_key_valid_at_exact_expiry_instant(self, validator, issuer, alice, clock):
        """Expiry is strict: now > expires_at."""
        issued = _issue(issuer, alice, days=1)
        clock.advance(days=1)
        assert isinstance(_run(validator.validate(issued.raw_key)), Granted)

    def test_revoked_key(self, validator, issuer, alice, key_store):
        issued = _issue(issuer, alice)
        _run(key_store.revoke(issued.record.id))
        assert _run(validator.validate(issued.raw_key)) == Denied(ErrorKind.REVOKED)

    def test_expired_wins_over_revoked(self, validator, issuer, alice, key_store, clock):
        issued = _issue(issuer, alice, days=1)
        _run(key_store.revoke(issued.record.id))
        clock.advance(days=2)
        assert _run(validator.validate(issued.raw_key)) == Denied(ErrorKind.EXPIRED)

    def test_inactive_account(self, validator, issuer, alice, account_store, key_store):
        issued = _issue(issuer, alice)
        _run(account_store.set_status(alice.id, UserStatus.INACTIVE))

        verdict = _run(validator.validate(issued.raw_key))

        assert verdict == Denied(ErrorKind.ACCOUNT_INACTIVE)
        # The key itself is untouched
        record = _run(key_store.get(issued.record.id))
        assert record.status == KeyStatus.ACTIVE
        assert record.total_hits == 0

    def test_reactivated_account_grants_again(
        self, validator, issuer, alice, account_store,
    ):
        issued = _issue(issuer, alice)
        _run(account_store.set_status(alice.id, UserStatus.INACTIVE))
        _run(account_store.set_status(alice.id, UserStatus.ACTIVE))
        assert isinstance(_run(validator.validate(issued.raw_key)), Granted)

    def test_missing_account(self, validator, issuer):
        issued = _run(issuer.issue(999, "orphan"))
        verdict = _run(validator.validate(issued.raw_key))
        assert verdict == Denied(ErrorKind.ACCOUNT_INACTIVE)

    def test_denials_never_touch_usage(self, validator, issuer, alice, key_store, clock):
        issued = _issue(issuer, alice, days=1)
        _run(key_store.revoke(issued.record.id))
        _run(validator.validate(issued.raw_key))
        clock.advance(days=5)
        _run(validator.validate(issued.raw_key))

        record = _run(key_store.get(issued.record.id))
        assert record.total_hits == 0
        assert record.last_used_at is None

    def test_error_strings(self):
        assert ErrorKind.MISSING_KEY.value == "Missing API Key"
        assert ErrorKind.INVALID_KEY.value == "Invalid API Key"
        assert ErrorKind.EXPIRED.value == "API Key Expired"
        assert ErrorKind.REVOKED.value == "API Key Revoked"
        assert ErrorKind.ACCOUNT_INACTIVE.value == "User Inactive - API Access Denied"


# ---------------------------------------------------------------------------
# 2. Success
# ---------------------------------------------------------------------------


class TestGranted:
    def test_grant_carries_account_and_role(self, validator, issuer, make_account):
        admin = make_account("root@keygate.dev", role=UserRole.ADMIN)
        issued = _issue(issuer, admin)

        verdict = _run(validator.validate(issued.raw_key))

        assert verdict == Granted(
            account_id=admin.id, role=UserRole.ADMIN, key_id=issued.record.id,
        )
        assert verdict.valid is True

    def test_success_records_usage(self, validator, issuer, alice, key_store, clock):
        issued = _issue(issuer, alice)
        clock.advance(hours=3)

        _run(validator.validate(issued.raw_key))
        _run(validator.validate(issued.raw_key))

        record = _run(key_store.get(issued.record.id))
        assert record.total_hits == 2
        assert record.last_used_at == clock.now

    def test_thirty_day_lifecycle(self, validator, issuer, alice, clock):
        """Issued at T with 30 days: valid at T+29d, expired at T+31d."""
        issued = _issue(issuer, alice, days=30)

        clock.advance(days=29)
        assert isinstance(_run(validator.validate(issued.raw_key)), Granted)

        clock.advance(days=2)
        assert _run(validator.validate(issued.raw_key)) == Denied(ErrorKind.EXPIRED)

    def test_concurrent_validations_count_every_hit(
        self, validator, issuer, alice, key_store,
    ):
        issued = _issue(issuer, alice)
        n = 50

        async def scenario():
            return await asyncio.gather(*(
                validator.validate(issued.raw_key) for _ in range(n)
            ))

        verdicts = _run(scenario())

        assert all(isinstance(v, Granted) for v in verdicts)
        assert _run(key_store.get(issued.record.id)).total_hits == n

    def test_validation_does_not_mutate_status(self, validator, issuer, alice, key_store):
        issued = _issue(issuer, alice)
        _run(validator.validate(issued.raw_key))
        record = _run(key_store.get(issued.record.id))
        assert record.status == KeyStatus.ACTIVE
        assert record.expires_at == issued.record.expires_at


# ---------------------------------------------------------------------------
# 3. Storage failures
# ---------------------------------------------------------------------------


class TestStorageFailures:
    def test_lookup_failure_propagates(self, account_store, clock):
        keys = AsyncMock()
        keys.find_by_hash.side_effect = StoreUnavailableError("api key lookup")
        validator = ApiKeyValidator(keys, account_store, clock=clock)

        with pytest.raises(StoreUnavailableError):
            _run(validator.validate("sk_whatever"))

    def test_account_lookup_failure_propagates(self, key_store, issuer, alice, clock):
        issued = _issue(issuer, alice)
        accounts = AsyncMock()
        accounts.get_status.side_effect = StoreUnavailableError("account status lookup")
        validator = ApiKeyValidator(key_store, accounts, clock=clock)

        with pytest.raises(StoreUnavailableError):
            _run(validator.validate(issued.raw_key))

    def test_usage_update_failure_still_grants(
        self, key_store, account_store, issuer, alice, clock,
    ):
        issued = _issue(issuer, alice)
        key_store.record_usage = AsyncMock(
            side_effect=StoreUnavailableError("api key usage update"),
        )
        validator = ApiKeyValidator(key_store, account_store, clock=clock)

        verdict = _run(validator.validate(issued.raw_key))

        assert isinstance(verdict, Granted)
        key_store.record_usage.assert_awaited_once_with(issued.record.id, clock.now)
