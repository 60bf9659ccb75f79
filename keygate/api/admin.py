# =============================================================================
# Admin API — Account Administration & Audit Trail
# =============================================================================
#
# All endpoints require a bearer session for an active admin account.
#
# Account status is the kill switch for every key an account owns:
# deactivating flips one column and the validator denies all of the
# account's keys from the next request on, without touching key rows.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request

from keygate.api.deps import (
    ApiError,
    client_address,
    get_account_store,
    get_audit_recorder,
    get_key_store,
    require_admin,
)
from keygate.db.models import UserStatus
from keygate.models.responses import (
    AccountListResponse,
    AccountResponse,
    AdminSummaryResponse,
    AuditLogListResponse,
    AuditLogResponse,
    PasswordResetResponse,
)
from keygate.services import audit
from keygate.services.accounts import AccountProfile, AccountStore
from keygate.services.audit import AuditRecorder
from keygate.services.key_store import KeyStore
from keygate.services.sessions import generate_temporary_password, hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

RECENT_LOGS_ON_SUMMARY = 5


# ---------------------------------------------------------------------------
# GET /admin/summary — Dashboard counts
# ---------------------------------------------------------------------------


@router.get(
    "/summary",
    response_model=AdminSummaryResponse,
    summary="Account and key counts with the latest audit entries",
)
async def get_summary(
    admin: AccountProfile = Depends(require_admin),
    accounts: AccountStore = Depends(get_account_store),
    keys: KeyStore = Depends(get_key_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AdminSummaryResponse:
    recent = await audit_recorder.recent(limit=RECENT_LOGS_ON_SUMMARY)
    return AdminSummaryResponse(
        total_users=await accounts.count(),
        total_keys=await keys.count(),
        recent_logs=[AuditLogResponse.model_validate(e) for e in recent],
    )


# ---------------------------------------------------------------------------
# GET /admin/users — Account listing
# ---------------------------------------------------------------------------


@router.get(
    "/users",
    response_model=AccountListResponse,
    summary="List accounts, newest first",
)
async def list_users(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: AccountProfile = Depends(require_admin),
    accounts: AccountStore = Depends(get_account_store),
) -> AccountListResponse:
    profiles = await accounts.list_accounts(limit=limit, offset=offset)
    return AccountListResponse(
        users=[AccountResponse.model_validate(p) for p in profiles],
        total=await accounts.count(),
        limit=limit,
        offset=offset,
    )


# ---------------------------------------------------------------------------
# POST /admin/users/{user_id}/toggle — Activate / deactivate
# ---------------------------------------------------------------------------


@router.post(
    "/users/{user_id}/toggle",
    response_model=AccountResponse,
    summary="Toggle an account between active and inactive",
)
async def toggle_user_status(
    user_id: int,
    request: Request,
    admin: AccountProfile = Depends(require_admin),
    accounts: AccountStore = Depends(get_account_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AccountResponse:
    target = await accounts.get_profile(user_id)
    if target is None:
        raise ApiError(404, "User not found")
    if target.id == admin.id:
        raise ApiError(400, "Admins cannot deactivate their own account")

    new_status = (
        UserStatus.INACTIVE if target.is_active else UserStatus.ACTIVE
    )
    updated = await accounts.set_status(user_id, new_status)
    if updated is None:
        raise ApiError(404, "User not found")

    logger.info(
        "Account status changed: user_id=%d, status=%s, by admin_id=%d",
        user_id, new_status.value, admin.id,
    )
    await audit_recorder.record(
        audit.USER_DEACTIVATED
        if new_status == UserStatus.INACTIVE
        else audit.USER_ACTIVATED,
        actor_id=admin.id,
        target_id=user_id,
        details=f"User {updated.email} status changed to {new_status.value}",
        source_address=client_address(request),
    )
    return AccountResponse.model_validate(updated)


# ---------------------------------------------------------------------------
# POST /admin/users/{user_id}/reset-password
# ---------------------------------------------------------------------------


@router.post(
    "/users/{user_id}/reset-password",
    response_model=PasswordResetResponse,
    summary="Replace an account's password with a temporary one",
)
async def reset_user_password(
    user_id: int,
    request: Request,
    admin: AccountProfile = Depends(require_admin),
    accounts: AccountStore = Depends(get_account_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> PasswordResetResponse:
    target = await accounts.get_profile(user_id)
    if target is None:
        raise ApiError(404, "User not found")

    temporary_password = generate_temporary_password()
    if not await accounts.set_password_hash(user_id, hash_password(temporary_password)):
        raise ApiError(404, "User not found")

    logger.info("Password reset: user_id=%d, by admin_id=%d", user_id, admin.id)
    await audit_recorder.record(
        audit.PASSWORD_RESET,
        actor_id=admin.id,
        target_id=user_id,
        details=f"Password reset for user {target.email}",
        source_address=client_address(request),
    )
    return PasswordResetResponse(
        user_id=user_id, temporary_password=temporary_password,
    )


# ---------------------------------------------------------------------------
# GET /admin/audit — Audit trail
# ---------------------------------------------------------------------------


@router.get(
    "/audit",
    response_model=AuditLogListResponse,
    summary="Query the audit trail",
)
async def list_audit_logs(
    actor_id: int | None = Query(default=None, description="Filter by actor"),
    action: str | None = Query(default=None, description="Filter by action tag"),
    limit: int = Query(default=50, ge=1, le=500),
    admin: AccountProfile = Depends(require_admin),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> AuditLogListResponse:
    """Query audit logs, newest first."""
    entries = await audit_recorder.recent(limit, actor_id=actor_id, action=action)
    total = await audit_recorder.count(actor_id=actor_id, action=action)
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(e) for e in entries],
        total=total,
    )
