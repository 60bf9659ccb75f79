# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐       ┌──────────────────────────────────┐
# │  users           │       │  api_keys                        │
# ├──────────────────┤       ├──────────────────────────────────┤
# │ id (PK)          │──1:N─▶│ id (PK)                          │
# │ email (unique)   │       │ user_id (FK → users.id)          │
# │ name, username   │       │ key_hash (unique, SHA-256 hex)   │
# │ password_hash    │       │ key_prefix (first 10 chars)      │
# │ github_id        │       │ name                             │
# │ role             │       │ status (active | revoked)        │
# │ status           │       │ created_at, expires_at           │
# │ created_at       │       │ last_used_at, total_hits         │
# └──────────────────┘       └──────────────────────────────────┘
#
# ┌──────────────────────────────────┐
# │  audit_logs (append-only)        │
# ├──────────────────────────────────┤
# │ id, action, actor_id, target_id  │
# │ details, ip_address, created_at  │
# └──────────────────────────────────┘
#
# These ORM classes never leave the services package. Stores convert rows
# into the frozen value objects defined next to them (ApiKeyRecord,
# AccountStatus, AuditEntry), so handlers cannot mutate a row by accident.
#
# Timestamps are written from Python in UTC as well as carrying a server
# default, so SQLite (tests) and PostgreSQL produce the same values.
# =============================================================================

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all Keygate tables."""

    pass


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class UserStatus(str, enum.Enum):
    """
    Account status. An inactive account denies every one of its API keys
    without modifying the key rows themselves.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"


class KeyStatus(str, enum.Enum):
    """
    API key status. ACTIVE → REVOKED is one-way; there is no reactivation.
    """

    ACTIVE = "active"
    REVOKED = "revoked"


class User(Base):
    """An account that owns API keys. Never hard-deleted."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # bcrypt hash; null for accounts created through GitHub OAuth
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    github_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True,
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.USER,
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', status={self.status})>"


class ApiKey(Base):
    """
    A revocable API key. Only the SHA-256 hash of the raw key is stored;
    the raw key is shown to its owner once, at creation.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )

    # SHA-256 hash of the full key — never store plaintext
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # First 10 chars of the raw key, display only
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    # Owner-chosen label (e.g., "ci-runner")
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[KeyStatus] = mapped_column(
        Enum(KeyStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=KeyStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Null = never expires
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Usage stats, updated only after a fully successful validation
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    total_hits: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )

    def __repr__(self) -> str:
        return (
            f"<ApiKey(id={self.id}, name='{self.name}', "
            f"prefix='{self.key_prefix}', status={self.status})>"
        )


class AuditLog(Base):
    """
    Append-only trail of security-relevant actions (status toggles,
    password resets, key mutations, registrations).
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Symbolic tag, e.g. "USER_DEACTIVATED"
    action: Mapped[str] = mapped_column(String(255), nullable=False)

    # Account that performed the action
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Account or key affected, when there is one
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    details: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Client IP address (IPv6-safe: max 45 chars)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# Key listing per owner, newest first
api_key_user_created_idx = Index(
    "idx_api_key_user_created",
    ApiKey.user_id,
    ApiKey.created_at,
)

audit_log_created_idx = Index(
    "idx_audit_log_created",
    AuditLog.created_at,
)

audit_log_actor_idx = Index(
    "idx_audit_log_actor_created",
    AuditLog.actor_id,
    AuditLog.created_at,
)
