# =============================================================================
# Gated API — /api/v1
# =============================================================================
#
# Endpoints external callers reach with an X-API-KEY header.
#
# /validate is the exception: it never fails with 401/403 and always answers
# 200 with {"valid": ...}, so a caller can check a key without treating a bad
# key as a transport error. Storage failures still surface as 503.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from keygate.api.deps import (
    ApiError,
    api_key_gate,
    api_key_header,
    get_account_store,
    get_validator,
    require_api_key,
)
from keygate.db.models import UserRole, utcnow
from keygate.models.responses import (
    AccountResponse,
    ResourceResponse,
    UserLookupResponse,
    ValidationResponse,
)
from keygate.services.accounts import AccountStore
from keygate.services.errors import StoreUnavailableError
from keygate.services.validator import ApiKeyValidator, Denied, Granted

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Gated API"])

# Account lookups answer 401 for every key failure, inactive owner included
require_api_key_for_lookup = api_key_gate(inactive_status_code=401)


# ---------------------------------------------------------------------------
# GET /api/v1/validate — Probe a key
# ---------------------------------------------------------------------------


@router.get(
    "/validate",
    response_model=ValidationResponse,
    response_model_exclude_none=True,
    summary="Check whether an API key is currently valid",
)
async def validate_key(
    request: Request,
    raw_key: str | None = Depends(api_key_header),
    validator: ApiKeyValidator = Depends(get_validator),
):
    try:
        verdict = await validator.validate(raw_key)
    except StoreUnavailableError as e:
        logger.error("Validation unavailable: %s", e.__cause__ or e)
        return JSONResponse(
            status_code=503,
            content={"valid": False, "error": "Service Unavailable"},
        )

    if isinstance(verdict, Denied):
        return ValidationResponse(valid=False, error=verdict.error.value)

    request.state.principal = verdict
    return ValidationResponse(
        valid=True,
        user_id=verdict.account_id,
        role=verdict.role,
        timestamp=utcnow(),
    )


# ---------------------------------------------------------------------------
# GET /api/v1/resource — The gated resource
# ---------------------------------------------------------------------------


@router.get(
    "/resource",
    response_model=ResourceResponse,
    summary="Protected resource (requires a valid API key)",
)
async def get_resource(
    principal: Granted = Depends(require_api_key),
) -> ResourceResponse:
    return ResourceResponse(user_id=principal.account_id)


# ---------------------------------------------------------------------------
# GET /api/v1/users/{user_id} — Account lookup (self or admin)
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}",
    response_model=UserLookupResponse,
    summary="Look up an account",
    description="Callers may look up their own account; admins any account.",
)
async def get_user(
    user_id: int,
    principal: Granted = Depends(require_api_key_for_lookup),
    accounts: AccountStore = Depends(get_account_store),
) -> UserLookupResponse:
    if principal.account_id != user_id and principal.role != UserRole.ADMIN:
        raise ApiError(403, "Unauthorized: Access denied to this user ID")

    profile = await accounts.get_profile(user_id)
    if profile is None:
        raise ApiError(404, "User not found")

    return UserLookupResponse(data=AccountResponse.model_validate(profile))
