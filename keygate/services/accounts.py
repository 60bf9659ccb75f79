# =============================================================================
# Accounts — Status Oracle and Account Store
# =============================================================================
#
# Two contracts live here:
#
#   AccountStatusOracle (Protocol) — read-only `get_status()`. This is the
#       only account view the validator depends on; it never mutates.
#
#   AccountStore (Protocol) — the oracle plus the handful of account
#       operations the gateway needs: login lookups, admin status toggles,
#       password resets and GitHub account linking. Not general user CRUD.
#
# Implementations: SqlAlchemyAccountStore and InMemoryAccountStore.
#
# Accounts leave this module only as frozen value objects. Extra fields from
# OAuth providers are mapped to GitHubIdentity at the boundary
# (services/github.py) and never reach the core as untyped dicts.
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from keygate.db.engine import Database
from keygate.db.models import User, UserRole, UserStatus, utcnow
from keygate.services.errors import DuplicateAccountError, translate_db_errors
from keygate.services.key_store import as_utc

if TYPE_CHECKING:
    from keygate.services.github import GitHubIdentity


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountStatus:
    """What the validator needs to know about a key's owner."""

    account_id: int
    status: UserStatus
    role: UserRole

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


@dataclass(frozen=True)
class AccountProfile:
    """Public projection of an account. Never carries credentials."""

    id: int
    email: str
    name: str | None
    username: str | None
    status: UserStatus
    role: UserRole

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ---------------------------------------------------------------------------
# Protocol Definitions
# ---------------------------------------------------------------------------


class AccountStatusOracle(Protocol):
    async def get_status(self, account_id: int) -> AccountStatus | None:
        """Status and role of an account, or None if it does not exist."""
        ...


class AccountStore(AccountStatusOracle, Protocol):
    async def get_profile(self, account_id: int) -> AccountProfile | None: ...

    async def find_by_email(self, email: str) -> AccountProfile | None: ...

    async def get_password_hash(self, account_id: int) -> str | None: ...

    async def create(
        self,
        email: str,
        *,
        password_hash: str | None = None,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        name: str | None = None,
        username: str | None = None,
        github_id: str | None = None,
    ) -> AccountProfile: ...

    async def set_status(
        self, account_id: int, status: UserStatus,
    ) -> AccountProfile | None: ...

    async def set_password_hash(self, account_id: int, password_hash: str) -> bool: ...

    async def link_github_identity(
        self, identity: GitHubIdentity,
    ) -> tuple[AccountProfile, bool]:
        """
        Resolve a GitHub login to an account.

        Match by github_id first, then by email (linking the GitHub id to
        the existing account), otherwise create a new active user account.
        Returns (profile, created).
        """
        ...

    async def list_accounts(
        self, limit: int = 50, offset: int = 0,
    ) -> list[AccountProfile]:
        """Accounts newest first, for the admin user listing."""
        ...

    async def count(self) -> int: ...


# ---------------------------------------------------------------------------
# Implementation 1: SQLAlchemy
# ---------------------------------------------------------------------------


class SqlAlchemyAccountStore:
    """Account store on the users table."""

    def __init__(self, database: Database):
        self._db = database

    async def get_status(self, account_id: int) -> AccountStatus | None:
        stmt = select(User.id, User.status, User.role).where(User.id == account_id)
        with translate_db_errors("account status lookup"):
            async with self._db.session() as session:
                row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return AccountStatus(
            account_id=row.id,
            status=UserStatus(row.status),
            role=UserRole(row.role),
        )

    async def get_profile(self, account_id: int) -> AccountProfile | None:
        with translate_db_errors("account lookup"):
            async with self._db.session() as session:
                user = await session.get(User, account_id)
        return _to_profile(user) if user is not None else None

    async def find_by_email(self, email: str) -> AccountProfile | None:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        with translate_db_errors("account lookup"):
            async with self._db.session() as session:
                user = (await session.execute(stmt)).scalar_one_or_none()
        return _to_profile(user) if user is not None else None

    async def get_password_hash(self, account_id: int) -> str | None:
        stmt = select(User.password_hash).where(User.id == account_id)
        with translate_db_errors("credential lookup"):
            async with self._db.session() as session:
                return (await session.execute(stmt)).scalar_one_or_none()

    async def create(
        self,
        email: str,
        *,
        password_hash: str | None = None,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        name: str | None = None,
        username: str | None = None,
        github_id: str | None = None,
    ) -> AccountProfile:
        user = User(
            email=email,
            password_hash=password_hash,
            role=role,
            status=status,
            name=name,
            username=username,
            github_id=github_id,
            created_at=utcnow(),
        )
        with translate_db_errors("account insert"):
            try:
                async with self._db.session() as session:
                    session.add(user)
                    await session.flush()
            except IntegrityError as e:
                raise DuplicateAccountError(f"Account {email} already exists") from e
        return _to_profile(user)

    async def set_status(
        self, account_id: int, status: UserStatus,
    ) -> AccountProfile | None:
        with translate_db_errors("account status update"):
            async with self._db.session() as session:
                user = await session.get(User, account_id)
                if user is None:
                    return None
                user.status = status
        return _to_profile(user)

    async def set_password_hash(self, account_id: int, password_hash: str) -> bool:
        with translate_db_errors("password update"):
            async with self._db.session() as session:
                user = await session.get(User, account_id)
                if user is None:
                    return False
                user.password_hash = password_hash
        return True

    async def link_github_identity(
        self, identity: GitHubIdentity,
    ) -> tuple[AccountProfile, bool]:
        with translate_db_errors("github account link"):
            async with self._db.session() as session:
                user = (await session.execute(
                    select(User).where(User.github_id == identity.github_id),
                )).scalar_one_or_none()
                if user is not None:
                    return _to_profile(user), False

                user = (await session.execute(
                    select(User).where(
                        func.lower(User.email) == identity.email.lower(),
                    ),
                )).scalar_one_or_none()
                if user is not None:
                    user.github_id = identity.github_id
                    return _to_profile(user), False

                user = User(
                    email=identity.email,
                    name=identity.name or identity.login,
                    username=identity.login,
                    github_id=identity.github_id,
                    role=UserRole.USER,
                    status=UserStatus.ACTIVE,
                    password_hash=None,
                    created_at=utcnow(),
                )
                session.add(user)
                await session.flush()
        return _to_profile(user), True

    async def list_accounts(
        self, limit: int = 50, offset: int = 0,
    ) -> list[AccountProfile]:
        stmt = (
            select(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with translate_db_errors("account list"):
            async with self._db.session() as session:
                users = (await session.execute(stmt)).scalars().all()
        return [_to_profile(u) for u in users]

    async def count(self) -> int:
        with translate_db_errors("account count"):
            async with self._db.session() as session:
                return (await session.execute(select(func.count(User.id)))).scalar() or 0


def _to_profile(user: User) -> AccountProfile:
    return AccountProfile(
        id=user.id,
        email=user.email,
        name=user.name,
        username=user.username,
        status=UserStatus(user.status),
        role=UserRole(user.role),
    )


# ---------------------------------------------------------------------------
# Implementation 2: In-memory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _StoredAccount:
    profile: AccountProfile
    password_hash: str | None
    github_id: str | None
    created_at: datetime


class InMemoryAccountStore:
    """Dict-backed account store."""

    def __init__(self):
        self._accounts: dict[int, _StoredAccount] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def get_status(self, account_id: int) -> AccountStatus | None:
        stored = self._accounts.get(account_id)
        if stored is None:
            return None
        return AccountStatus(
            account_id=account_id,
            status=stored.profile.status,
            role=stored.profile.role,
        )

    async def get_profile(self, account_id: int) -> AccountProfile | None:
        stored = self._accounts.get(account_id)
        return stored.profile if stored is not None else None

    async def find_by_email(self, email: str) -> AccountProfile | None:
        stored = self._find(lambda a: a.profile.email.lower() == email.lower())
        return stored.profile if stored is not None else None

    async def get_password_hash(self, account_id: int) -> str | None:
        stored = self._accounts.get(account_id)
        return stored.password_hash if stored is not None else None

    async def create(
        self,
        email: str,
        *,
        password_hash: str | None = None,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        name: str | None = None,
        username: str | None = None,
        github_id: str | None = None,
    ) -> AccountProfile:
        async with self._lock:
            return self._insert(
                email,
                password_hash=password_hash,
                role=role,
                status=status,
                name=name,
                username=username,
                github_id=github_id,
            )

    async def set_status(
        self, account_id: int, status: UserStatus,
    ) -> AccountProfile | None:
        async with self._lock:
            stored = self._accounts.get(account_id)
            if stored is None:
                return None
            profile = dataclasses.replace(stored.profile, status=status)
            self._accounts[account_id] = dataclasses.replace(stored, profile=profile)
        return profile

    async def set_password_hash(self, account_id: int, password_hash: str) -> bool:
        async with self._lock:
            stored = self._accounts.get(account_id)
            if stored is None:
                return False
            self._accounts[account_id] = dataclasses.replace(
                stored, password_hash=password_hash,
            )
        return True

    async def link_github_identity(
        self, identity: GitHubIdentity,
    ) -> tuple[AccountProfile, bool]:
        async with self._lock:
            stored = self._find(lambda a: a.github_id == identity.github_id)
            if stored is not None:
                return stored.profile, False

            stored = self._find(
                lambda a: a.profile.email.lower() == identity.email.lower(),
            )
            if stored is not None:
                self._accounts[stored.profile.id] = dataclasses.replace(
                    stored, github_id=identity.github_id,
                )
                return stored.profile, False

            profile = self._insert(
                identity.email,
                name=identity.name or identity.login,
                username=identity.login,
                github_id=identity.github_id,
            )
        return profile, True

    async def list_accounts(
        self, limit: int = 50, offset: int = 0,
    ) -> list[AccountProfile]:
        ordered = sorted(
            self._accounts.values(),
            key=lambda a: (a.created_at, a.profile.id),
            reverse=True,
        )
        return [a.profile for a in ordered[offset:offset + limit]]

    async def count(self) -> int:
        return len(self._accounts)

    def _find(self, predicate) -> _StoredAccount | None:
        return next((a for a in self._accounts.values() if predicate(a)), None)

    def _insert(
        self,
        email: str,
        *,
        password_hash: str | None = None,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        name: str | None = None,
        username: str | None = None,
        github_id: str | None = None,
    ) -> AccountProfile:
        if self._find(lambda a: a.profile.email.lower() == email.lower()):
            raise DuplicateAccountError(f"Account {email} already exists")
        if github_id is not None and self._find(lambda a: a.github_id == github_id):
            raise DuplicateAccountError(f"GitHub id {github_id} already linked")
        profile = AccountProfile(
            id=self._next_id,
            email=email,
            name=name,
            username=username,
            status=status,
            role=role,
        )
        self._next_id += 1
        self._accounts[profile.id] = _StoredAccount(
            profile=profile,
            password_hash=password_hash,
            github_id=github_id,
            created_at=as_utc(utcnow()),
        )
        return profile
