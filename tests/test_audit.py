# =============================================================================
# Unit Tests — Audit Recorder
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from keygate.db.engine import Database
from keygate.services import audit
from keygate.services.audit import (
    AuditRecorder,
    InMemoryAuditRecorder,
    SqlAlchemyAuditRecorder,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TestAuditRecorderBase:
    def test_backend_missing_primitives_cannot_be_built(self):
        class AppendOnly(AuditRecorder):
            async def _append(self, *args):
                pass

        with pytest.raises(TypeError):
            AppendOnly()

    def test_base_cannot_be_built(self):
        with pytest.raises(TypeError):
            AuditRecorder()


class TestInMemoryAuditRecorder:
    def test_record_and_recent_newest_first(self):
        recorder = InMemoryAuditRecorder()

        async def scenario():
            await recorder.record(audit.USER_DEACTIVATED, actor_id=1, target_id=2)
            await recorder.record(audit.PASSWORD_RESET, actor_id=1, target_id=3)
            await recorder.record(audit.API_KEY_REVOKED, actor_id=4, target_id=9)
            return await recorder.recent(limit=2)

        recent = _run(scenario())
        assert [e.action for e in recent] == [
            audit.API_KEY_REVOKED, audit.PASSWORD_RESET,
        ]

    def test_filters(self):
        recorder = InMemoryAuditRecorder()

        async def scenario():
            await recorder.record(audit.USER_DEACTIVATED, actor_id=1, target_id=2)
            await recorder.record(audit.USER_ACTIVATED, actor_id=1, target_id=2)
            await recorder.record(audit.API_KEY_REVOKED, actor_id=4)
            return (
                await recorder.recent(actor_id=1),
                await recorder.count(action=audit.API_KEY_REVOKED),
                await recorder.count(),
            )

        by_actor, revoked, total = _run(scenario())
        assert {e.actor_id for e in by_actor} == {1}
        assert revoked == 1
        assert total == 3

    def test_truncates_details_and_address(self):
        recorder = InMemoryAuditRecorder()
        _run(recorder.record(
            audit.PASSWORD_RESET,
            actor_id=1,
            details="x" * 600,
            source_address="f" * 60,
        ))

        [entry] = recorder.entries
        assert len(entry.details) == 500
        assert len(entry.source_address) == 45

    def test_failure_is_logged_not_raised(self, caplog):
        recorder = InMemoryAuditRecorder()
        recorder._append = AsyncMock(side_effect=RuntimeError("disk full"))

        with caplog.at_level(logging.WARNING, logger="keygate.services.audit"):
            _run(recorder.record(audit.USER_ACTIVATED, actor_id=1))

        assert "Failed to write audit log" in caplog.text
        assert "disk full" in caplog.text


class TestSqlAlchemyAuditRecorder:
    def test_round_trip(self, tmp_path):
        async def scenario():
            database = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
            await database.create_all()
            try:
                recorder = SqlAlchemyAuditRecorder(database)
                await recorder.record(
                    audit.USER_DEACTIVATED,
                    actor_id=1,
                    target_id=2,
                    details="User bob@keygate.dev status changed to inactive",
                    source_address="2001:db8::1",
                )
                await recorder.record(audit.API_KEY_REVOKED, actor_id=2, target_id=5)
                return await recorder.recent(), await recorder.count(actor_id=1)
            finally:
                await database.dispose()

        recent, by_actor = _run(scenario())
        assert [e.action for e in recent] == [
            audit.API_KEY_REVOKED, audit.USER_DEACTIVATED,
        ]
        assert recent[1].source_address == "2001:db8::1"
        assert recent[1].created_at.tzinfo is not None
        assert by_actor == 1

    def test_missing_table_does_not_raise(self, tmp_path, caplog):
        async def scenario():
            database = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'none.db'}")
            try:
                await SqlAlchemyAuditRecorder(database).record(
                    audit.USER_ACTIVATED, actor_id=1,
                )
            finally:
                await database.dispose()

        with caplog.at_level(logging.WARNING, logger="keygate.services.audit"):
            _run(scenario())

        assert "Failed to write audit log" in caplog.text
