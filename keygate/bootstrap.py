# =============================================================================
# Bootstrap — Create Tables and the First Admin Account
# =============================================================================
#
# Usage:
#   BOOTSTRAP_ADMIN_EMAIL=admin@keygate.dev \
#   BOOTSTRAP_ADMIN_PASSWORD=... \
#   python -m keygate.bootstrap
#
# Idempotent: an existing account with the same email is left alone.
# =============================================================================

import asyncio
import logging
import sys

from keygate.config import Settings, configure_logging, get_settings
from keygate.db.engine import Database
from keygate.db.models import UserRole, UserStatus
from keygate.services.accounts import AccountProfile, SqlAlchemyAccountStore
from keygate.services.sessions import hash_password

logger = logging.getLogger(__name__)


async def bootstrap(settings: Settings) -> AccountProfile:
    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        raise ValueError(
            "BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD must be set",
        )
    if len(settings.bootstrap_admin_password) < settings.password_min_length:
        raise ValueError(
            f"Admin password must be at least {settings.password_min_length} characters",
        )

    database = Database.from_settings(settings)
    try:
        await database.create_all()
        accounts = SqlAlchemyAccountStore(database)

        existing = await accounts.find_by_email(settings.bootstrap_admin_email)
        if existing is not None:
            logger.info("Admin %s already exists (id=%d)", existing.email, existing.id)
            return existing

        admin = await accounts.create(
            settings.bootstrap_admin_email,
            password_hash=hash_password(settings.bootstrap_admin_password),
            role=UserRole.ADMIN,
            status=UserStatus.ACTIVE,
            name="Super Admin",
            username="admin",
        )
        logger.info("Admin %s created (id=%d)", admin.email, admin.id)
        return admin
    finally:
        await database.dispose()


def main() -> int:
    settings = get_settings()
    configure_logging(settings)
    try:
        asyncio.run(bootstrap(settings))
    except ValueError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
