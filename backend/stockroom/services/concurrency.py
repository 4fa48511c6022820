# Overview: Transaction boundary, row locking, and failure classification for service operations.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    ServiceError,
    ConflictError,
    TransactionTimeoutError,
    OperationFailedError,
)
from ..extensions import db


_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "database is locked",
    "lock wait",
    "deadlock",
    "canceling statement",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows that must not lose updates also carry a version_id column.
    """
    return query.with_for_update()


def classify_failure(
    exc: Exception,
    operation: str,
    *,
    conflict_message: str | None = None,
) -> ServiceError:
    """
    Map a persistence failure to the typed error the caller should see.

    Typed ServiceErrors are returned unchanged. Anything unrecognised becomes
    a generic, operation-specific message; the original stays in the log.
    """
    if isinstance(exc, ServiceError):
        return exc

    if isinstance(exc, PoolTimeoutError):
        return TransactionTimeoutError()

    if isinstance(exc, StaleDataError):
        return ConflictError("The record was modified concurrently. Please retry.")

    if isinstance(exc, IntegrityError):
        detail = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        if "unique" in detail or "duplicate" in detail:
            return ConflictError(conflict_message or "A record with these details already exists")
        if "foreign key" in detail:
            return ConflictError(f"Cannot {operation} due to data dependencies")
        return ConflictError(conflict_message or f"Cannot {operation}: constraint violated")

    if isinstance(exc, OperationalError):
        detail = str(exc).lower()
        if any(marker in detail for marker in _TIMEOUT_MARKERS):
            return TransactionTimeoutError()

    current_app.logger.exception("Unexpected failure during %s", operation)
    return OperationFailedError(f"Failed to {operation}. Please try again.")


@contextmanager
def atomic(
    operation: str,
    *,
    timeout: float | None = None,
    conflict_message: str | None = None,
):
    """
    Run a block as one transaction: everything commits or nothing does.

    Args:
        operation: Human-readable name used in fallback error messages
            ("add product" -> "Failed to add product. Please try again.")
        timeout: Total execution bound in seconds
            (default TRANSACTION_TIMEOUT_SECONDS). Exceeding it rolls back and
            raises TransactionTimeoutError.
        conflict_message: Message for unique-constraint violations.

    Usage:
        with atomic("add product"):
            db.session.add(product)
    """
    if timeout is None:
        timeout = current_app.config.get("TRANSACTION_TIMEOUT_SECONDS")

    session = db.session
    started = time.monotonic()
    try:
        yield session
        session.flush()

        elapsed = time.monotonic() - started
        if timeout and elapsed > timeout:
            current_app.logger.warning(
                "Transaction for %s exceeded %.1fs (took %.2fs); rolling back",
                operation, timeout, elapsed,
            )
            raise TransactionTimeoutError()

        session.commit()
    except ServiceError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        raise classify_failure(exc, operation, conflict_message=conflict_message) from exc
    except Exception as exc:
        session.rollback()
        raise classify_failure(exc, operation) from exc
