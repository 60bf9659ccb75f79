"""
Storage error taxonomy shared by the key, account and audit stores.

Handlers and the validator only ever see these types, never raw driver or
SQLAlchemy exceptions, so "storage is down" cannot be mistaken for
"key is invalid".
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class StoreError(Exception):
    """Base class for store failures."""


class StoreUnavailableError(StoreError):
    """The backing store could not complete an operation (I/O, driver, timeout)."""

    def __init__(self, operation: str):
        super().__init__(f"Store unavailable during {operation}")
        self.operation = operation


class DuplicateKeyHashError(StoreError):
    """An API key with the same hash already exists. Insertion never overwrites."""


class DuplicateAccountError(StoreError):
    """An account with the same email or GitHub id already exists."""


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Re-raise infrastructure failures as StoreUnavailableError."""
    try:
        yield
    except StoreError:
        raise
    except (SQLAlchemyError, OSError) as e:
        raise StoreUnavailableError(operation) from e
