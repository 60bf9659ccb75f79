# =============================================================================
# Key Management API — /keys
# =============================================================================
#
# Signed-in users manage their own API keys here. Every endpoint requires a
# bearer session (see api/deps.py); API keys cannot manage API keys.
#
# DESIGN DECISION: The raw API key is only returned ONCE at creation
# (POST /keys). After that, only the key_prefix is visible.
#
# DESIGN DECISION: Revoke is the owner's tool and is idempotent: revoking a
# revoked key answers 200 with the unchanged record and writes no second
# audit entry. DELETE removes the row and is reserved for admins.
#
# Keys owned by someone else answer 404, not 403, so key ids of other
# accounts cannot be discovered.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from keygate.api.deps import (
    ApiError,
    client_address,
    get_audit_recorder,
    get_current_account,
    get_issuer,
    get_key_store,
    require_admin,
)
from keygate.models.requests import CreateApiKeyRequest
from keygate.models.responses import (
    ApiKeyCreatedResponse,
    ApiKeyListResponse,
    ApiKeyResponse,
)
from keygate.services import audit
from keygate.services.accounts import AccountProfile
from keygate.services.audit import AuditRecorder
from keygate.services.issuance import KeyIssuer
from keygate.services.key_store import ApiKeyRecord, KeyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/keys", tags=["API Keys"])


# ---------------------------------------------------------------------------
# POST /keys — Create API Key
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ApiKeyCreatedResponse,
    status_code=201,
    summary="Create a new API key",
    description=(
        "Generate a new API key for the signed-in account. The raw key is "
        "only returned in this response, store it securely."
    ),
)
async def create_api_key(
    body: CreateApiKeyRequest,
    request: Request,
    account: AccountProfile = Depends(get_current_account),
    issuer: KeyIssuer = Depends(get_issuer),
) -> ApiKeyCreatedResponse:
    try:
        issued = await issuer.issue(
            account.id,
            body.name,
            body.expires_in_days,
            source_address=client_address(request),
        )
    except ValueError as e:
        raise ApiError(400, str(e)) from e

    return ApiKeyCreatedResponse(
        **_to_key_response(issued.record).model_dump(),
        raw_key=issued.raw_key,
    )


# ---------------------------------------------------------------------------
# GET /keys — List own API Keys
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=ApiKeyListResponse,
    summary="List your API keys",
)
async def list_api_keys(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    account: AccountProfile = Depends(get_current_account),
    keys: KeyStore = Depends(get_key_store),
) -> ApiKeyListResponse:
    """List the caller's keys, newest first (never includes raw key or hash)."""
    records = await keys.find_by_owner(account.id, limit=limit, offset=offset)
    total = await keys.count_by_owner(account.id)
    return ApiKeyListResponse(
        keys=[_to_key_response(r) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )


# ---------------------------------------------------------------------------
# GET /keys/{key_id} — Get API Key Details
# ---------------------------------------------------------------------------


@router.get(
    "/{key_id}",
    response_model=ApiKeyResponse,
    summary="Get API key details",
)
async def get_api_key(
    key_id: int,
    account: AccountProfile = Depends(get_current_account),
    keys: KeyStore = Depends(get_key_store),
) -> ApiKeyResponse:
    record = await _get_owned_key_or_404(keys, key_id, account)
    return _to_key_response(record)


# ---------------------------------------------------------------------------
# POST /keys/{key_id}/revoke — Revoke API Key
# ---------------------------------------------------------------------------


@router.post(
    "/{key_id}/revoke",
    response_model=ApiKeyResponse,
    summary="Revoke an API key",
    description="Permanently disables the key. Revoking twice is a no-op.",
)
async def revoke_api_key(
    key_id: int,
    request: Request,
    account: AccountProfile = Depends(get_current_account),
    keys: KeyStore = Depends(get_key_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> ApiKeyResponse:
    record = await _get_owned_key_or_404(keys, key_id, account)

    if await keys.revoke(key_id):
        logger.info("API key revoked: id=%d, account_id=%d", key_id, account.id)
        await audit_recorder.record(
            audit.API_KEY_REVOKED,
            actor_id=account.id,
            target_id=key_id,
            details=f"API key '{record.name}' revoked ({record.key_prefix}...)",
            source_address=client_address(request),
        )
        record = await keys.get(key_id) or record

    return _to_key_response(record)


# ---------------------------------------------------------------------------
# DELETE /keys/{key_id} — Delete API Key (admin)
# ---------------------------------------------------------------------------


@router.delete(
    "/{key_id}",
    status_code=204,
    summary="Delete an API key (admin only)",
)
async def delete_api_key(
    key_id: int,
    request: Request,
    admin: AccountProfile = Depends(require_admin),
    keys: KeyStore = Depends(get_key_store),
    audit_recorder: AuditRecorder = Depends(get_audit_recorder),
) -> Response:
    record = await keys.get(key_id)
    if record is None or not await keys.delete(key_id):
        raise ApiError(404, f"API key {key_id} not found")

    logger.info("API key deleted: id=%d, by admin_id=%d", key_id, admin.id)
    await audit_recorder.record(
        audit.API_KEY_DELETED,
        actor_id=admin.id,
        target_id=key_id,
        details=(
            f"API key '{record.name}' ({record.key_prefix}...) of user "
            f"{record.account_id} deleted"
        ),
        source_address=client_address(request),
    )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_owned_key_or_404(
    keys: KeyStore, key_id: int, account: AccountProfile,
) -> ApiKeyRecord:
    record = await keys.get(key_id)
    if record is None or record.account_id != account.id:
        raise ApiError(404, f"API key {key_id} not found")
    return record


def _to_key_response(record: ApiKeyRecord) -> ApiKeyResponse:
    return ApiKeyResponse.model_validate(record)
