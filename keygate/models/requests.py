# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. Invalid bodies are rejected by FastAPI
# with a 422 before any handler or store is touched.
# =============================================================================

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from keygate.services.issuance import MAX_EXPIRES_IN_DAYS


class CreateApiKeyRequest(BaseModel):
    """
    Request body for POST /keys — issue a new API key for the caller.

    Example:
        {"name": "ci-runner", "expires_in_days": 90}
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Label to recognise the key by (e.g. 'ci-runner')",
        examples=["ci-runner"],
    )

    # strict: "30" or 30.5 are rejected rather than coerced
    expires_in_days: int = Field(
        default=30,
        ge=1,
        le=MAX_EXPIRES_IN_DAYS,
        strict=True,
        description="Days until the key expires (at most ten years). Defaults to 30.",
        examples=[30],
    )

    model_config = ConfigDict(str_strip_whitespace=True)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class UpdatePasswordRequest(BaseModel):
    """Request body for POST /auth/password — change the caller's password."""

    current_password: str | None = Field(
        default=None,
        max_length=72,
        description="Required when the account already has a password",
    )

    # bcrypt only looks at the first 72 bytes
    new_password: str = Field(..., min_length=6, max_length=72)
