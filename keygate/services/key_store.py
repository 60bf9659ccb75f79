# =============================================================================
# Key Store — Persistence for API Key Records
# =============================================================================
#
# DESIGN DECISION: Protocol (structural typing) with two implementations:
#   KeyStore (Protocol)
#   ├── SqlAlchemyKeyStore — async SQLAlchemy (PostgreSQL in production,
#   │                        SQLite in tests)
#   └── InMemoryKeyStore   — process-local dicts, for local demos and tests
#
# Both hand out frozen ApiKeyRecord values, never ORM rows.
#
# CONCURRENCY:
# record_usage() is a store-side atomic increment. The SQL store issues
#   UPDATE api_keys SET total_hits = total_hits + 1, last_used_at = :now
# and never reads-modifies-writes in Python, so N concurrent successful
# validations add exactly N hits.
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from keygate.db.engine import Database
from keygate.db.models import ApiKey, KeyStatus
from keygate.services.errors import DuplicateKeyHashError, translate_db_errors

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewApiKey:
    """Everything needed to insert a key. The raw secret is not part of it."""

    account_id: int
    key_hash: str
    key_prefix: str
    name: str
    created_at: datetime
    expires_at: datetime | None


@dataclass(frozen=True)
class ApiKeyRecord:
    """A stored API key as seen by the services layer."""

    id: int
    account_id: int
    key_hash: str
    key_prefix: str
    name: str
    status: KeyStatus
    created_at: datetime
    expires_at: datetime | None
    last_used_at: datetime | None
    total_hits: int

    @property
    def is_active(self) -> bool:
        return self.status == KeyStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        """A null expires_at never expires."""
        return self.expires_at is not None and now > self.expires_at


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class KeyStore(Protocol):
    """Persistence contract for API key records."""

    async def create(self, new_key: NewApiKey) -> ApiKeyRecord:
        """Insert a key. Raises DuplicateKeyHashError on a hash collision."""
        ...

    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None: ...

    async def get(self, key_id: int) -> ApiKeyRecord | None: ...

    async def find_by_owner(
        self, account_id: int, limit: int = 20, offset: int = 0,
    ) -> list[ApiKeyRecord]:
        """Keys of one account, newest first."""
        ...

    async def count_by_owner(self, account_id: int) -> int: ...

    async def count(self) -> int: ...

    async def revoke(self, key_id: int) -> bool:
        """
        Move an active key to revoked.

        Returns True if the status changed. Revoking a revoked or unknown
        key is a no-op that returns False.
        """
        ...

    async def record_usage(self, key_id: int, used_at: datetime) -> None:
        """Atomically set last_used_at and add 1 to total_hits."""
        ...

    async def delete(self, key_id: int) -> bool:
        """Hard-delete a key. Returns False if it did not exist."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: SQLAlchemy
# ---------------------------------------------------------------------------


class SqlAlchemyKeyStore:
    """Key store on the api_keys table. One short transaction per call."""

    def __init__(self, database: Database):
        self._db = database

    async def create(self, new_key: NewApiKey) -> ApiKeyRecord:
        row = ApiKey(
            user_id=new_key.account_id,
            key_hash=new_key.key_hash,
            key_prefix=new_key.key_prefix,
            name=new_key.name,
            status=KeyStatus.ACTIVE,
            created_at=new_key.created_at,
            expires_at=new_key.expires_at,
            total_hits=0,
        )
        with translate_db_errors("api key insert"):
            try:
                async with self._db.session() as session:
                    session.add(row)
                    await session.flush()
            except IntegrityError as e:
                if "key_hash" in str(e.orig):
                    raise DuplicateKeyHashError(
                        f"API key hash already exists (prefix {new_key.key_prefix})",
                    ) from e
                raise
        return _to_record(row)

    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        stmt = select(ApiKey).where(ApiKey.key_hash == key_hash)
        with translate_db_errors("api key lookup"):
            async with self._db.session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        return _to_record(row) if row is not None else None

    async def get(self, key_id: int) -> ApiKeyRecord | None:
        with translate_db_errors("api key get"):
            async with self._db.session() as session:
                row = await session.get(ApiKey, key_id)
        return _to_record(row) if row is not None else None

    async def find_by_owner(
        self, account_id: int, limit: int = 20, offset: int = 0,
    ) -> list[ApiKeyRecord]:
        stmt = (
            select(ApiKey)
            .where(ApiKey.user_id == account_id)
            .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with translate_db_errors("api key listing"):
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(r) for r in rows]

    async def count_by_owner(self, account_id: int) -> int:
        stmt = select(func.count(ApiKey.id)).where(ApiKey.user_id == account_id)
        with translate_db_errors("api key count"):
            async with self._db.session() as session:
                return (await session.execute(stmt)).scalar() or 0

    async def count(self) -> int:
        with translate_db_errors("api key count"):
            async with self._db.session() as session:
                return (await session.execute(select(func.count(ApiKey.id)))).scalar() or 0

    async def revoke(self, key_id: int) -> bool:
        # The status guard in WHERE makes a second revoke touch zero rows
        stmt = (
            update(ApiKey)
            .where(ApiKey.id == key_id, ApiKey.status == KeyStatus.ACTIVE)
            .values(status=KeyStatus.REVOKED)
        )
        with translate_db_errors("api key revoke"):
            async with self._db.session() as session:
                result = await session.execute(stmt)
        return result.rowcount > 0

    async def record_usage(self, key_id: int, used_at: datetime) -> None:
        stmt = (
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(
                last_used_at=used_at,
                total_hits=ApiKey.total_hits + 1,
            )
        )
        with translate_db_errors("api key usage update"):
            async with self._db.session() as session:
                await session.execute(stmt)

    async def delete(self, key_id: int) -> bool:
        with translate_db_errors("api key delete"):
            async with self._db.session() as session:
                result = await session.execute(
                    delete(ApiKey).where(ApiKey.id == key_id),
                )
        return result.rowcount > 0


def _to_record(row: ApiKey) -> ApiKeyRecord:
    return ApiKeyRecord(
        id=row.id,
        account_id=row.user_id,
        key_hash=row.key_hash,
        key_prefix=row.key_prefix,
        name=row.name,
        status=KeyStatus(row.status),
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        last_used_at=as_utc(row.last_used_at),
        total_hits=row.total_hits or 0,
    )


# ---------------------------------------------------------------------------
# Implementation 2: In-memory
# ---------------------------------------------------------------------------


class InMemoryKeyStore:
    """
    Dict-backed key store.

    A single asyncio.Lock serialises mutations, which gives the same
    guarantees as the SQL store within one event loop.
    """

    def __init__(self):
        self._keys: dict[int, ApiKeyRecord] = {}
        self._by_hash: dict[str, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def create(self, new_key: NewApiKey) -> ApiKeyRecord:
        async with self._lock:
            if new_key.key_hash in self._by_hash:
                raise DuplicateKeyHashError(
                    f"API key hash already exists (prefix {new_key.key_prefix})",
                )
            record = ApiKeyRecord(
                id=self._next_id,
                account_id=new_key.account_id,
                key_hash=new_key.key_hash,
                key_prefix=new_key.key_prefix,
                name=new_key.name,
                status=KeyStatus.ACTIVE,
                created_at=new_key.created_at,
                expires_at=new_key.expires_at,
                last_used_at=None,
                total_hits=0,
            )
            self._next_id += 1
            self._keys[record.id] = record
            self._by_hash[record.key_hash] = record.id
        return record

    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        key_id = self._by_hash.get(key_hash)
        return self._keys.get(key_id) if key_id is not None else None

    async def get(self, key_id: int) -> ApiKeyRecord | None:
        return self._keys.get(key_id)

    async def find_by_owner(
        self, account_id: int, limit: int = 20, offset: int = 0,
    ) -> list[ApiKeyRecord]:
        owned = [k for k in self._keys.values() if k.account_id == account_id]
        owned.sort(key=lambda k: (k.created_at, k.id), reverse=True)
        return owned[offset:offset + limit]

    async def count_by_owner(self, account_id: int) -> int:
        return sum(1 for k in self._keys.values() if k.account_id == account_id)

    async def count(self) -> int:
        return len(self._keys)

    async def revoke(self, key_id: int) -> bool:
        async with self._lock:
            record = self._keys.get(key_id)
            if record is None or not record.is_active:
                return False
            self._keys[key_id] = dataclasses.replace(
                record, status=KeyStatus.REVOKED,
            )
        return True

    async def record_usage(self, key_id: int, used_at: datetime) -> None:
        async with self._lock:
            record = self._keys.get(key_id)
            if record is None:
                return
            self._keys[key_id] = dataclasses.replace(
                record,
                last_used_at=used_at,
                total_hits=record.total_hits + 1,
            )

    async def delete(self, key_id: int) -> bool:
        async with self._lock:
            record = self._keys.pop(key_id, None)
            if record is None:
                return False
            del self._by_hash[record.key_hash]
        return True
