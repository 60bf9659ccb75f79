# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - auth.py: API key generation and SHA-256 hashing
#   - key_store.py: Pluggable key store protocol (SQLAlchemy, in-memory)
#   - accounts.py: Account status oracle and account store
#   - validator.py: Ordered key validation, Granted/Denied verdicts
#   - issuance.py: Minting keys and handing out the raw key once
#   - audit.py: Best-effort audit trail
#   - sessions.py: bcrypt passwords and JWT bearer tokens
#   - github.py: GitHub OAuth client (httpx)
#   - errors.py: Storage error taxonomy
# =============================================================================
