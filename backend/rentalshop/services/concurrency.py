# Overview: Row locking, store-error translation and retry for order mutations.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    ConflictError,
    ConstraintError,
    OrderError,
    PersistenceError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)

_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "database is locked",
    "canceling statement",
    "lock wait",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column still catches lost updates there.
    """
    return query.with_for_update()


def translate_store_error(exc: SQLAlchemyError) -> OrderError:
    """Map a driver/ORM failure onto the order error taxonomy."""
    message = str(getattr(exc, "orig", None) or exc)
    lowered = message.lower()

    if isinstance(exc, StaleDataError):
        return ConflictError("Order was modified concurrently; reload and retry")
    if isinstance(exc, IntegrityError):
        if "check constraint" in lowered or "violates check" in lowered:
            return ConstraintError(message)
        return PersistenceError(message)
    if isinstance(exc, OperationalError) and any(m in lowered for m in _TIMEOUT_MARKERS):
        return StoreTimeoutError(message)
    return PersistenceError(message)


@contextmanager
def store_errors():
    """Re-raise SQLAlchemy failures inside the block as typed order errors."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise translate_store_error(exc) from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an operation with retry on store timeouts.

    Each attempt must open its own transaction. Conflicts are not retried:
    the caller has to re-read and decide again.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except StoreTimeoutError as exc:
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Store timeout (attempt %s/%s): %s", attempt + 1, attempts, exc.message)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
