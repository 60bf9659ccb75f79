# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - validate.py: Gated API (/api/v1), authenticated with X-API-KEY
#   - keys.py: API key issuance, listing and revocation (/keys)
#   - admin.py: Account administration and audit trail (/admin)
#   - auth.py: Password and GitHub login, password change (/auth)
#   - deps.py: Shared dependencies (service lookup, key and session auth)
#   - middleware.py: Per-request log line
# =============================================================================
