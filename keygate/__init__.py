# =============================================================================
# Keygate — API Key Issuance & Validation Gateway
# =============================================================================
# Signed-in users mint revocable API keys; external callers present a key in
# the X-API-KEY header and get a granted/denied verdict for the gated API.
#
# Package structure:
#   keygate/
#   ├── api/          → FastAPI route handlers (gated API, keys, admin, auth)
#   ├── db/           → Database engine, session management and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic (hashing, key store, validation,
#   │                    issuance, accounts, audit, sessions, GitHub OAuth)
#   ├── bootstrap.py  → Create tables and the first admin account
#   └── main.py       → FastAPI app factory
# =============================================================================
