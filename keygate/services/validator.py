# =============================================================================
# Validation Engine — Is This API Key Allowed Right Now?
# =============================================================================
#
# Checks run in a fixed order and stop at the first failure:
#
#   1. missing key                     → MISSING_KEY
#   2. hash(raw) not in the key store  → INVALID_KEY
#   3. expires_at set and now > it     → EXPIRED   (before status, so a key
#                                                   that is both reports Expired)
#   4. status != active                → REVOKED
#   5. owner absent or inactive        → ACCOUNT_INACTIVE
#   6. success → record_usage() → Granted
#
# Steps 1-5 only read. The usage update (step 6) runs on full success only.
#
# FAILURE MODES:
#   - A storage error while reading raises StoreUnavailableError. It is not
#     turned into a Denied verdict: the caller must not conclude the key is
#     bad because the database is down.
#   - A storage error during the usage update is logged and the Granted
#     verdict is still returned. Hit counts may then under-count.
# =============================================================================

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from keygate.db.models import UserRole, utcnow
from keygate.services.accounts import AccountStatusOracle
from keygate.services.auth import hash_api_key
from keygate.services.errors import StoreUnavailableError
from keygate.services.key_store import KeyStore

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Denial reasons. Values are the caller-facing error strings."""

    MISSING_KEY = "Missing API Key"
    INVALID_KEY = "Invalid API Key"
    EXPIRED = "API Key Expired"
    REVOKED = "API Key Revoked"
    ACCOUNT_INACTIVE = "User Inactive - API Access Denied"


@dataclass(frozen=True)
class Granted:
    account_id: int
    role: UserRole
    key_id: int

    valid: ClassVar[bool] = True


@dataclass(frozen=True)
class Denied:
    error: ErrorKind

    valid: ClassVar[bool] = False


Verdict = Granted | Denied


class ApiKeyValidator:
    """
    Stateless validator over a key store and an account status oracle.

    `clock` returns the current UTC time; tests inject a fixed one.
    """

    def __init__(
        self,
        keys: KeyStore,
        accounts: AccountStatusOracle,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._keys = keys
        self._accounts = accounts
        self._clock = clock

    async def validate(self, raw_key: str | None) -> Verdict:
        if not raw_key:
            return Denied(ErrorKind.MISSING_KEY)

        record = await self._keys.find_by_hash(hash_api_key(raw_key))
        if record is None:
            return Denied(ErrorKind.INVALID_KEY)

        now = self._clock()
        if record.is_expired(now):
            return Denied(ErrorKind.EXPIRED)

        if not record.is_active:
            return Denied(ErrorKind.REVOKED)

        account = await self._accounts.get_status(record.account_id)
        if account is None or not account.is_active:
            return Denied(ErrorKind.ACCOUNT_INACTIVE)

        try:
            await self._keys.record_usage(record.id, now)
        except StoreUnavailableError as e:
            logger.warning(
                "Usage update failed for key_id=%d, access still granted: %s",
                record.id, e,
            )

        logger.info(
            "API access: key_id=%d account_id=%d", record.id, account.account_id,
        )
        return Granted(
            account_id=account.account_id,
            role=account.role,
            key_id=record.id,
        )
