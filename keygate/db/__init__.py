# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session management, and ORM models.
#
# Key exports:
#   - Database: engine + session factory, built once per process
#   - Base: SQLAlchemy declarative base for ORM models
#   - User, ApiKey, AuditLog: ORM models
# =============================================================================
