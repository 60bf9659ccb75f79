# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the API.
#
# DESIGN DECISION: Separate response models from stored records.
# Key records carry the SHA-256 hash; no response model has a field for it,
# so it cannot leak through serialization. The raw key appears in exactly
# one model (ApiKeyCreatedResponse).
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from keygate.db.models import KeyStatus, UserRole, UserStatus


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx raised by the gateway itself."""

    error: str


# ---------------------------------------------------------------------------
# Gated API (/api/v1)
# ---------------------------------------------------------------------------


class ValidationResponse(BaseModel):
    """
    Response for GET /api/v1/validate.

    Always HTTP 200. Check `valid`: on success user_id, role and timestamp
    are set; on failure only `error` is.
    """

    valid: bool
    user_id: int | None = None
    role: UserRole | None = None
    timestamp: datetime | None = None
    error: str | None = None


class ResourceResponse(BaseModel):
    """Response for GET /api/v1/resource."""

    message: str = "Access Granted"
    user_id: int


class AccountResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    username: str | None = None
    status: UserStatus
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class UserLookupResponse(BaseModel):
    """Response for GET /api/v1/users/{user_id}."""

    success: bool = True
    data: AccountResponse


class AccountListResponse(BaseModel):
    """Response for GET /admin/users, newest accounts first."""

    users: list[AccountResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Key management (/keys)
# ---------------------------------------------------------------------------


class ApiKeyResponse(BaseModel):
    """
    Response for API key details.

    Never includes raw key or hash — only the prefix for identification.
    """

    id: int
    name: str
    key_prefix: str
    status: KeyStatus
    created_at: datetime
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    total_hits: int = 0

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreatedResponse(ApiKeyResponse):
    """
    Response for POST /keys — returned once at key creation.

    WARNING: The raw_key is only returned in this response.
    It is never stored or retrievable after creation.
    """

    raw_key: str = Field(
        description=(
            "The full API key. Store it securely, "
            "it will NOT be shown again."
        ),
    )


class ApiKeyListResponse(BaseModel):
    """Response for GET /keys — the caller's keys, newest first."""

    keys: list[ApiKeyResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Admin & audit (/admin)
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    """Response for a single audit log entry."""

    id: int
    action: str
    actor_id: int
    target_id: int | None = None
    details: str | None = None
    ip_address: str | None = Field(
        default=None, validation_alias="source_address",
    )
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AuditLogListResponse(BaseModel):
    """Response for GET /admin/audit — list of audit log entries."""

    logs: list[AuditLogResponse]
    total: int


class AdminSummaryResponse(BaseModel):
    """Response for GET /admin/summary."""

    total_users: int
    total_keys: int
    recent_logs: list[AuditLogResponse]


class PasswordResetResponse(BaseModel):
    """Response for POST /admin/users/{user_id}/reset-password."""

    user_id: int
    temporary_password: str = Field(
        description="Shown once. The user should change it after logging in.",
    )


# ---------------------------------------------------------------------------
# Sessions (/auth)
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Bearer token for the key management API."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")
    role: UserRole
