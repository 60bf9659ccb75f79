# =============================================================================
# Key Issuance — Mint, Persist and Hand Out a Raw Key Once
# =============================================================================
#
# The raw key exists in exactly two places: the IssuedKey returned here and
# the HTTP response built from it. The store only ever receives the hash and
# the display prefix, and no read path can reconstruct the secret.
#
# DESIGN DECISION: Issuance is audited (API_KEY_CREATED) through the same
# best-effort recorder as revocation, so a failing audit write never blocks
# key creation.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from keygate.config import Settings
from keygate.db.models import utcnow
from keygate.services import audit
from keygate.services.audit import AuditRecorder
from keygate.services.auth import (
    DEFAULT_DISPLAY_LENGTH,
    DEFAULT_KEY_PREFIX,
    DEFAULT_RANDOM_BYTES,
    generate_api_key,
)
from keygate.services.key_store import ApiKeyRecord, KeyStore, NewApiKey

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
# Ten years; larger values overflow datetime arithmetic near year 9999
MAX_EXPIRES_IN_DAYS = 3650


@dataclass(frozen=True)
class IssuedKey:
    raw_key: str = field(repr=False)
    record: ApiKeyRecord


class KeyIssuer:
    def __init__(
        self,
        keys: KeyStore,
        audit_recorder: AuditRecorder,
        *,
        prefix: str = DEFAULT_KEY_PREFIX,
        random_bytes: int = DEFAULT_RANDOM_BYTES,
        display_length: int = DEFAULT_DISPLAY_LENGTH,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._keys = keys
        self._audit = audit_recorder
        self._prefix = prefix
        self._random_bytes = random_bytes
        self._display_length = display_length
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        keys: KeyStore,
        audit_recorder: AuditRecorder,
        clock: Callable[[], datetime] = utcnow,
    ) -> KeyIssuer:
        return cls(
            keys,
            audit_recorder,
            prefix=settings.api_key_prefix,
            random_bytes=settings.api_key_random_bytes,
            display_length=settings.api_key_display_length,
            clock=clock,
        )

    async def issue(
        self,
        owner_account_id: int,
        name: str,
        expires_in_days: int = 30,
        *,
        source_address: str | None = None,
    ) -> IssuedKey:
        """
        Create a key for `owner_account_id`.

        Raises:
            ValueError: name is empty or too long, or expires_in_days is
                not an integer between 1 and MAX_EXPIRES_IN_DAYS.
            DuplicateKeyHashError: hash collision (not retried).
            StoreUnavailableError: the key could not be persisted.
        """
        if (
            isinstance(expires_in_days, bool)
            or not isinstance(expires_in_days, int)
            or not 1 <= expires_in_days <= MAX_EXPIRES_IN_DAYS
        ):
            raise ValueError(
                f"expires_in_days must be an integer between 1 and {MAX_EXPIRES_IN_DAYS}",
            )
        name = name.strip() if isinstance(name, str) else ""
        if not name or len(name) > MAX_NAME_LENGTH:
            raise ValueError(
                f"Key name must be between 1 and {MAX_NAME_LENGTH} characters",
            )

        raw_key, key_prefix, key_hash = generate_api_key(
            self._prefix, self._random_bytes, self._display_length,
        )
        now = self._clock()
        record = await self._keys.create(NewApiKey(
            account_id=owner_account_id,
            key_hash=key_hash,
            key_prefix=key_prefix,
            name=name,
            created_at=now,
            expires_at=now + timedelta(days=expires_in_days),
        ))

        logger.info(
            "API key created: id=%d, account_id=%d, prefix='%s'",
            record.id, owner_account_id, record.key_prefix,
        )
        await self._audit.record(
            audit.API_KEY_CREATED,
            actor_id=owner_account_id,
            target_id=record.id,
            details=f"API key '{name}' created ({key_prefix}...)",
            source_address=source_address,
        )
        return IssuedKey(raw_key=raw_key, record=record)
