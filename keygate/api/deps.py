# =============================================================================
# API Dependencies — Service Lookup & Authentication
# =============================================================================
#
# Two kinds of caller, two dependencies:
#
# 1. require_api_key()      — gated API (/api/v1). Reads X-API-KEY, runs the
#                             validator, returns the Granted verdict.
#                             Built by api_key_gate(), which also makes the
#                             401-only variant for account lookups.
# 2. get_current_account()  — key management and admin API. Reads a bearer
#                             session token and loads the account behind it.
#    require_admin()        — get_current_account() + role check.
#
# DESIGN DECISION: FastAPI dependency (not middleware) for auth.
# - Each endpoint opts in via Depends(...)
# - The resolved principal is available in route handlers
# - Testable via dependency_overrides
#
# Services (stores, validator, issuer) are built once in the lifespan and
# live on app.state; the get_* helpers below are the only place handlers
# reach for them.
#
# DESIGN DECISION: APIKeyHeader / HTTPBearer with auto_error=False. A
# missing header must produce our own {"error": "Missing API Key"} body,
# not FastAPI's default 403.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import (
    APIKeyHeader,
    HTTPAuthorizationCredentials,
    HTTPBearer,
)

from keygate.config import Settings, settings
from keygate.services.accounts import AccountProfile, AccountStore
from keygate.services.audit import AuditRecorder
from keygate.services.github import GitHubOAuthClient
from keygate.services.issuance import KeyIssuer
from keygate.services.key_store import KeyStore
from keygate.services.sessions import InvalidTokenError, decode_access_token
from keygate.services.validator import (
    ApiKeyValidator,
    Denied,
    ErrorKind,
    Granted,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Rendered by the app as `{"error": <message>}` with `status_code`."""

    def __init__(self, status_code: int, error: str, headers: dict | None = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.headers = headers


# Security schemes for OpenAPI docs (show "Authorize" in Swagger UI)
api_key_header = APIKeyHeader(name=settings.api_key_header, auto_error=False)
_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Service accessors
# ---------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_key_store(request: Request) -> KeyStore:
    return request.app.state.key_store


def get_account_store(request: Request) -> AccountStore:
    return request.app.state.account_store


def get_audit_recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder


def get_validator(request: Request) -> ApiKeyValidator:
    return request.app.state.validator


def get_issuer(request: Request) -> KeyIssuer:
    return request.app.state.issuer


def get_github_client(request: Request) -> GitHubOAuthClient | None:
    return request.app.state.github_client


def client_address(request: Request) -> str | None:
    """Source address for audit entries."""
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Gated API: X-API-KEY
# ---------------------------------------------------------------------------


def api_key_gate(inactive_status_code: int = 403):
    """
    Build a dependency that allows the request only if the presented API
    key validates.

    Raises:
        ApiError 401: missing, unknown, expired or revoked key
        ApiError inactive_status_code: the key's owner account is inactive
        StoreUnavailableError: propagated, rendered as 503 by the app
    """

    async def dependency(
        request: Request,
        raw_key: str | None = Depends(api_key_header),
        validator: ApiKeyValidator = Depends(get_validator),
    ) -> Granted:
        verdict = await validator.validate(raw_key)
        if isinstance(verdict, Denied):
            status_code = (
                inactive_status_code
                if verdict.error == ErrorKind.ACCOUNT_INACTIVE
                else 401
            )
            raise ApiError(status_code, verdict.error.value)

        # Read by RequestLoggingMiddleware
        request.state.principal = verdict
        return verdict

    return dependency


require_api_key = api_key_gate()


# ---------------------------------------------------------------------------
# Key management API: bearer session
# ---------------------------------------------------------------------------


async def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    accounts: AccountStore = Depends(get_account_store),
    app_settings: Settings = Depends(get_app_settings),
) -> AccountProfile:
    """
    Resolve the bearer token to an active account.

    The account is re-read on every request, so deactivation and role
    changes take effect before the token expires.
    """
    if credentials is None:
        raise ApiError(
            401, "Not authenticated", headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = decode_access_token(credentials.credentials, app_settings)
    except InvalidTokenError as e:
        logger.info("Rejected session token: %s", e)
        raise ApiError(
            401, "Invalid or expired token", headers={"WWW-Authenticate": "Bearer"},
        ) from e

    account = await accounts.get_profile(claims.account_id)
    if account is None:
        raise ApiError(
            401, "Invalid or expired token", headers={"WWW-Authenticate": "Bearer"},
        )
    if not account.is_active:
        raise ApiError(403, "Account is inactive")
    return account


async def require_admin(
    account: AccountProfile = Depends(get_current_account),
) -> AccountProfile:
    if not account.is_admin:
        raise ApiError(403, "Admin access required")
    return account
