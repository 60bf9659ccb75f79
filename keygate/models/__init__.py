# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API.
# These are SEPARATE from the database models (keygate/db/models.py), so a
# key hash or password hash has no field to leak through.
# =============================================================================
