# =============================================================================
# Auth Service — API Key Generation & Hashing
# =============================================================================
#
# Pure functions for API key material. No FastAPI or database dependency —
# used by key issuance, the validator, and tests.
#
# DESIGN DECISION: SHA-256 hashing (not bcrypt), with no salt. Raw keys
# carry 192 bits of randomness and are never user-chosen, so a fast
# deterministic digest is safe and lets the hash double as the lookup key.
# Passwords are a different matter and use bcrypt (services/sessions.py).
# =============================================================================

from __future__ import annotations

import hashlib
import secrets

DEFAULT_KEY_PREFIX = "sk_"
DEFAULT_RANDOM_BYTES = 24
DEFAULT_DISPLAY_LENGTH = 10


def generate_api_key(
    prefix: str = DEFAULT_KEY_PREFIX,
    random_bytes: int = DEFAULT_RANDOM_BYTES,
    display_length: int = DEFAULT_DISPLAY_LENGTH,
) -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_prefix, key_hash):
        - raw_key: Full key to hand to the owner (only visible once)
        - key_prefix: First `display_length` chars, stored for display
        - key_hash: SHA-256 hex digest for storage and lookup
    """
    if random_bytes < 16:
        raise ValueError("API keys need at least 128 bits of randomness")
    raw_key = f"{prefix}{secrets.token_hex(random_bytes)}"
    key_prefix = raw_key[:display_length]
    key_hash = hash_api_key(raw_key)
    return raw_key, key_prefix, key_hash


def hash_api_key(raw_key: str) -> str:
    """Hash an API key using SHA-256. Returns 64-char hex digest."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()
