# =============================================================================
# Session API — /auth
# =============================================================================
#
# Password login, GitHub OAuth login and password change. Each login path
# ends the same way: an active account gets a bearer token.
#
# DESIGN DECISION: Tokens are returned in the JSON body, not set as cookies.
# Browser session mechanics are out of scope for this service; clients send
# the token back as `Authorization: Bearer <token>`.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from keygate.api.deps import (
    ApiError,
    client_address,
    get_account_store,
    get_app_settings,
    get_audit_recorder,
    get_current_account,
    get_github_client,
)
from keygate.config import Settings
from keygate.models.requests import LoginRequest, UpdatePasswordRequest
from keygate.models.responses import TokenResponse
from keygate.services import audit
from keygate.services.accounts import AccountProfile, AccountStore
from keygate.services.audit import AuditRecorder
from keygate.services.github import GitHubOAuthClient, GitHubOAuthError
from keygate.services.sessions import (
    create_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _issue_token(account: AccountProfile, settings: Settings) -> TokenResponse:
    token, expires_in = create_access_token(account.id, account.role, settings)
    return TokenResponse(access_token=token, expires_in=expires_in, role=account.role)


# ---------------------------------------------------------------------------
# POST /auth/login — Email + password
# ---------------------------------------------------------------------------


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    accounts: AccountStore = Depends(get_account_store),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    account = await accounts.find_by_email(body.email)
    password_hash = (
        await accounts.get_password_hash(account.id) if account else None
    )
    # Same message for unknown email and wrong password
    if account is None or not verify_password(body.password, password_hash):
        logger.info("Failed login for %s", body.email)
        raise ApiError(401, "Invalid email or password")
    if not account.is_active:
        raise ApiError(403, "Account is inactive")

    logger.info("Login: account_id=%d", account.id)
    return _issue_token(account, settings)


# ---------------------------------------------------------------------------
# GET /auth/github — Start GitHub OAuth
# ---------------------------------------------------------------------------


@router.get(
    "/github",
    summary="Redirect to GitHub to sign in",
    response_class=RedirectResponse,
    status_code=302,
)
async def github_login(
    github: GitHubOAuthClient | None = Depends(get_github_client),
) -> RedirectResponse:
    if github is None:
        raise ApiError(503, "GitHub login is not configured")
    return RedirectResponse(github.authorize_url(), status_code=302)


# ---------------------------------------------------------------------------
# GET /auth/github/callback — Finish GitHub OAuth
# ---------------------------------------------------------------------------


@router.get(
    "/github/callback",
    response_model=TokenResponse,
    summary="GitHub OAuth callback",
)
async def github_callback(
    request: Request,
    code: str | None = Query(default=None),
    github: GitHubOAuthClient | None = Depends(get_github_client),
    accounts: AccountStore = Depends(get_account_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    if github is None:
        raise ApiError(503, "GitHub login is not configured")
    if not code:
        raise ApiError(400, "Missing code parameter")

    try:
        identity = await github.authenticate(code)
    except GitHubOAuthError as e:
        raise ApiError(400, str(e)) from e

    account, created = await accounts.link_github_identity(identity)
    if created:
        logger.info(
            "Account registered via GitHub: account_id=%d, login=%s",
            account.id, identity.login,
        )
        await audit_recorder.record(
            audit.USER_REGISTERED,
            actor_id=account.id,
            target_id=account.id,
            details=f"Registered via GitHub: {identity.login}",
            source_address=client_address(request),
        )

    if not account.is_active:
        raise ApiError(403, "Account is inactive")
    return _issue_token(account, settings)


# ---------------------------------------------------------------------------
# POST /auth/password — Change own password
# ---------------------------------------------------------------------------


@router.post(
    "/password",
    status_code=204,
    summary="Change your password",
)
async def change_password(
    body: UpdatePasswordRequest,
    request: Request,
    account: AccountProfile = Depends(get_current_account),
    accounts: AccountStore = Depends(get_account_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
    settings: Settings = Depends(get_app_settings),
) -> None:
    if len(body.new_password) < settings.password_min_length:
        raise ApiError(
            400,
            f"Password must be at least {settings.password_min_length} characters",
        )

    # OAuth-only accounts have no password yet and may set one directly
    current_hash = await accounts.get_password_hash(account.id)
    if current_hash and not verify_password(body.current_password or "", current_hash):
        raise ApiError(401, "Current password is incorrect")

    try:
        new_hash = hash_password(body.new_password)
    except ValueError as e:
        raise ApiError(400, str(e)) from e

    await accounts.set_password_hash(account.id, new_hash)
    logger.info("Password changed: account_id=%d", account.id)
    await audit_recorder.record(
        audit.PASSWORD_CHANGED,
        actor_id=account.id,
        target_id=account.id,
        details=f"User {account.email} changed their password",
        source_address=client_address(request),
    )
