# =============================================================================
# Keygate — FastAPI Application Entry Point
# =============================================================================
#
# Wiring only: logging, the lifespan that builds and tears down the
# services, exception handlers, middleware and routers.
#
# LIFESPAN:
#   startup  → Database (if storage_backend="database") → create tables
#              → stores → validator, issuer, GitHub client → app.state
#   shutdown → dispose the engine
#
# DESIGN DECISION: `create_app()` accepts ready-made stores. Tests pass
# in-memory stores and a fixed clock; production passes nothing and gets
# whatever `settings.storage_backend` selects.
#
# Run locally:
#   uvicorn keygate.main:app --reload --port 8080
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keygate.api import admin, auth, keys, validate
from keygate.api.deps import ApiError
from keygate.api.middleware import RequestLoggingMiddleware
from keygate.config import Settings, configure_logging, get_settings
from keygate.db.engine import Database
from keygate.db.models import utcnow
from keygate.models.responses import HealthResponse
from keygate.services.accounts import (
    AccountStore,
    InMemoryAccountStore,
    SqlAlchemyAccountStore,
)
from keygate.services.audit import (
    AuditRecorder,
    InMemoryAuditRecorder,
    SqlAlchemyAuditRecorder,
)
from keygate.services.errors import StoreUnavailableError
from keygate.services.github import GitHubOAuthClient
from keygate.services.issuance import KeyIssuer
from keygate.services.key_store import (
    InMemoryKeyStore,
    KeyStore,
    SqlAlchemyKeyStore,
)
from keygate.services.validator import ApiKeyValidator

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    key_store: KeyStore | None = None,
    account_store: AccountStore | None = None,
    audit_recorder: AuditRecorder | None = None,
    github_client: GitHubOAuthClient | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s (storage=%s)",
            settings.app_name, settings.app_version, settings.storage_backend,
        )
        database = None
        keys, accounts, recorder = key_store, account_store, audit_recorder

        if None in (keys, accounts, recorder):
            if settings.storage_backend == "database":
                database = Database.from_settings(settings)
                if settings.create_tables_on_startup:
                    await database.create_all()
                keys = keys or SqlAlchemyKeyStore(database)
                accounts = accounts or SqlAlchemyAccountStore(database)
                recorder = recorder or SqlAlchemyAuditRecorder(database)
            else:
                logger.warning("In-memory storage: all data is lost on restart")
                keys = keys or InMemoryKeyStore()
                accounts = accounts or InMemoryAccountStore()
                recorder = recorder or InMemoryAuditRecorder()

        app.state.settings = settings
        app.state.key_store = keys
        app.state.account_store = accounts
        app.state.audit_recorder = recorder
        app.state.validator = ApiKeyValidator(keys, accounts, clock=clock)
        app.state.issuer = KeyIssuer.from_settings(settings, keys, recorder, clock=clock)
        app.state.github_client = github_client or GitHubOAuthClient.from_settings(settings)

        yield

        logger.info("Shutting down %s", settings.app_name)
        if database is not None:
            await database.dispose()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Issue, revoke and validate API keys. External callers present a "
            f"key in the {settings.api_key_header} header to reach the gated API."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error},
            headers=exc.headers,
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        # Operators get the cause; callers learn nothing about the key
        logger.error(
            "%s %s failed: %s (cause: %r)",
            request.method, request.url.path, exc, exc.__cause__,
        )
        return JSONResponse(status_code=503, content={"error": "Service Unavailable"})

    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            version=settings.app_version,
            service=settings.app_name,
        )

    app.include_router(validate.router)
    app.include_router(auth.router)
    app.include_router(keys.router)
    app.include_router(admin.router)

    return app


app = create_app()
