# =============================================================================
# Unit Tests — API Key Material & Request/Response Models
# =============================================================================
#
# Pure functions and schemas only, no stores or HTTP.
#
# Test groups:
#   1. Key generation & hashing
#   2. Request model validation
#   3. Response model serialization
# =============================================================================

from __future__ import annotations

import hashlib

import pytest
from pydantic import ValidationError

from keygate.services.auth import generate_api_key, hash_api_key

# ---------------------------------------------------------------------------
# 1. Key Generation & Hashing
# ---------------------------------------------------------------------------


class TestKeyGeneration:
    """Tests for API key generation and hashing."""

    def test_key_format_has_prefix(self):
        """Generated key starts with 'sk_'."""
        raw_key, prefix, key_hash = generate_api_key()
        assert raw_key.startswith("sk_")

    def test_key_length(self):
        """Generated key is 'sk_' + 48 hex chars = 51 chars total."""
        raw_key, prefix, key_hash = generate_api_key()
        assert len(raw_key) == 51
        int(raw_key[3:], 16)

    def test_prefix_is_first_10_chars(self):
        """Key prefix is the first 10 characters of the raw key."""
        raw_key, prefix, key_hash = generate_api_key()
        assert prefix == raw_key[:10]

    def test_hash_is_64_hex(self):
        """Key hash is a 64-char hex digest (SHA-256)."""
        raw_key, prefix, key_hash = generate_api_key()
        assert len(key_hash) == 64
        int(key_hash, 16)

    def test_hash_matches_returned_hash(self):
        raw_key, _, key_hash = generate_api_key()
        assert hash_api_key(raw_key) == key_hash

    def test_keys_are_unique(self):
        """Two generated keys should differ."""
        raw1, _, hash1 = generate_api_key()
        raw2, _, hash2 = generate_api_key()
        assert raw1 != raw2
        assert hash1 != hash2

    def test_hash_is_deterministic(self):
        """Same raw key always produces the same hash."""
        raw_key = "sk_abc123"
        assert hash_api_key(raw_key) == hash_api_key(raw_key)

    def test_hash_is_plain_sha256(self):
        expected = hashlib.sha256(b"sk_abc123").hexdigest()
        assert hash_api_key("sk_abc123") == expected

    def test_different_keys_different_hashes(self):
        """Different raw keys produce different hashes."""
        assert hash_api_key("sk_key1") != hash_api_key("sk_key2")

    def test_custom_prefix(self):
        raw_key, prefix, _ = generate_api_key(prefix="kg_live_", display_length=12)
        assert raw_key.startswith("kg_live_")
        assert prefix == raw_key[:12]

    def test_too_little_randomness_rejected(self):
        with pytest.raises(ValueError):
            generate_api_key(random_bytes=8)


# ---------------------------------------------------------------------------
# 2. Request Model Validation
# ---------------------------------------------------------------------------


class TestRequestModels:
    """Tests for Pydantic request model validation."""

    def test_create_key_requires_name(self):
        from keygate.models.requests import CreateApiKeyRequest

        with pytest.raises(ValidationError):
            CreateApiKeyRequest()

    def test_create_key_defaults_to_30_days(self):
        from keygate.models.requests import CreateApiKeyRequest

        req = CreateApiKeyRequest(name="ci-runner")
        assert req.name == "ci-runner"
        assert req.expires_in_days == 30

    @pytest.mark.parametrize("days", [0, -5, "30", 2.5, True, 3651])
    def test_create_key_rejects_bad_expiry(self, days):
        from keygate.models.requests import CreateApiKeyRequest

        with pytest.raises(ValidationError):
            CreateApiKeyRequest(name="k", expires_in_days=days)

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_create_key_rejects_bad_name(self, name):
        from keygate.models.requests import CreateApiKeyRequest

        with pytest.raises(ValidationError):
            CreateApiKeyRequest(name=name)

    def test_login_requires_email(self):
        from keygate.models.requests import LoginRequest

        with pytest.raises(ValidationError):
            LoginRequest(email="not-an-email", password="secret")

    def test_new_password_min_length(self):
        from keygate.models.requests import UpdatePasswordRequest

        with pytest.raises(ValidationError):
            UpdatePasswordRequest(new_password="12345")


# ---------------------------------------------------------------------------
# 3. Response Model Serialization
# ---------------------------------------------------------------------------


class TestResponseModels:
    """Tests for Pydantic response model serialization."""

    def test_api_key_response_excludes_hash(self):
        """ApiKeyResponse schema does not include key_hash."""
        from keygate.models.responses import ApiKeyResponse

        schema = ApiKeyResponse.model_json_schema()
        assert "key_hash" not in schema.get("properties", {})
        assert "raw_key" not in schema.get("properties", {})

    def test_api_key_created_response_includes_raw_key(self):
        """ApiKeyCreatedResponse includes raw_key field."""
        from keygate.models.responses import ApiKeyCreatedResponse

        schema = ApiKeyCreatedResponse.model_json_schema()
        assert "raw_key" in schema.get("properties", {})
        assert "key_hash" not in schema.get("properties", {})

    def test_account_response_has_no_credentials(self):
        from keygate.models.responses import AccountResponse

        properties = AccountResponse.model_json_schema()["properties"]
        assert "password_hash" not in properties
        assert "github_id" not in properties
