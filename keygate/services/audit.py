# =============================================================================
# Audit Recorder — Append-only Trail of Sensitive Actions
# =============================================================================
#
# Records who did what to whom: key creation, revocation and deletion,
# account status toggles, password resets and registrations.
#
# DESIGN DECISION: Best-effort writes. `record()` never raises. A failed
# write is logged at WARNING and the triggering operation carries on, the
# same way request logging never crashes the request it describes.
#
# Subclasses only implement the storage primitives (_append, _recent,
# _count); truncation and failure handling live in the base class so both
# backends behave identically.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select

from keygate.db.engine import Database
from keygate.db.models import AuditLog, utcnow
from keygate.services.errors import translate_db_errors
from keygate.services.key_store import as_utc

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 500
MAX_ADDRESS_LENGTH = 45

# Action tags
API_KEY_CREATED = "API_KEY_CREATED"
API_KEY_REVOKED = "API_KEY_REVOKED"
API_KEY_DELETED = "API_KEY_DELETED"
USER_ACTIVATED = "USER_ACTIVATED"
USER_DEACTIVATED = "USER_DEACTIVATED"
USER_REGISTERED = "USER_REGISTERED"
PASSWORD_RESET = "PASSWORD_RESET"
PASSWORD_CHANGED = "PASSWORD_CHANGED"


@dataclass(frozen=True)
class AuditEntry:
    id: int
    action: str
    actor_id: int
    target_id: int | None
    details: str | None
    source_address: str | None
    created_at: datetime


class AuditRecorder(ABC):
    """Base recorder. Use SqlAlchemyAuditRecorder or InMemoryAuditRecorder."""

    async def record(
        self,
        action: str,
        actor_id: int,
        target_id: int | None = None,
        details: str | None = None,
        source_address: str | None = None,
    ) -> None:
        """Append an entry. Failures are logged, never raised."""
        if details is not None:
            details = details[:MAX_DETAILS_LENGTH]
        if source_address is not None:
            source_address = source_address[:MAX_ADDRESS_LENGTH]
        try:
            await self._append(
                action, actor_id, target_id, details, source_address, utcnow(),
            )
        except Exception as e:
            logger.warning(
                "Failed to write audit log: action=%s actor_id=%s: %s",
                action, actor_id, e,
            )

    async def recent(
        self,
        limit: int = 50,
        *,
        actor_id: int | None = None,
        action: str | None = None,
    ) -> list[AuditEntry]:
        """Newest entries first, optionally filtered."""
        return await self._recent(limit, actor_id, action)

    async def count(
        self, *, actor_id: int | None = None, action: str | None = None,
    ) -> int:
        return await self._count(actor_id, action)

    @abstractmethod
    async def _append(
        self,
        action: str,
        actor_id: int,
        target_id: int | None,
        details: str | None,
        source_address: str | None,
        created_at: datetime,
    ) -> None:
        ...

    @abstractmethod
    async def _recent(
        self, limit: int, actor_id: int | None, action: str | None,
    ) -> list[AuditEntry]:
        ...

    @abstractmethod
    async def _count(self, actor_id: int | None, action: str | None) -> int:
        ...


class SqlAlchemyAuditRecorder(AuditRecorder):
    """Writes to audit_logs, one session per entry."""

    def __init__(self, database: Database):
        self._db = database

    async def _append(
        self, action, actor_id, target_id, details, source_address, created_at,
    ) -> None:
        async with self._db.session() as session:
            session.add(AuditLog(
                action=action,
                actor_id=actor_id,
                target_id=target_id,
                details=details,
                ip_address=source_address,
                created_at=created_at,
            ))

    async def _recent(self, limit, actor_id, action) -> list[AuditEntry]:
        stmt = _filtered(select(AuditLog), actor_id, action).order_by(
            AuditLog.created_at.desc(), AuditLog.id.desc(),
        ).limit(limit)
        with translate_db_errors("audit log listing"):
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        return [
            AuditEntry(
                id=r.id,
                action=r.action,
                actor_id=r.actor_id,
                target_id=r.target_id,
                details=r.details,
                source_address=r.ip_address,
                created_at=as_utc(r.created_at),
            )
            for r in rows
        ]

    async def _count(self, actor_id, action) -> int:
        stmt = _filtered(select(func.count(AuditLog.id)), actor_id, action)
        with translate_db_errors("audit log count"):
            async with self._db.session() as session:
                return (await session.execute(stmt)).scalar() or 0


def _filtered(stmt, actor_id: int | None, action: str | None):
    if actor_id is not None:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)
    return stmt


class InMemoryAuditRecorder(AuditRecorder):
    def __init__(self):
        self.entries: list[AuditEntry] = []
        self._lock = asyncio.Lock()

    async def _append(
        self, action, actor_id, target_id, details, source_address, created_at,
    ) -> None:
        async with self._lock:
            self.entries.append(AuditEntry(
                id=len(self.entries) + 1,
                action=action,
                actor_id=actor_id,
                target_id=target_id,
                details=details,
                source_address=source_address,
                created_at=created_at,
            ))

    def _matching(self, actor_id, action) -> list[AuditEntry]:
        return [
            e for e in self.entries
            if (actor_id is None or e.actor_id == actor_id)
            and (action is None or e.action == action)
        ]

    async def _recent(self, limit, actor_id, action) -> list[AuditEntry]:
        return list(reversed(self._matching(actor_id, action)))[:limit]

    async def _count(self, actor_id, action) -> int:
        return len(self._matching(actor_id, action))
