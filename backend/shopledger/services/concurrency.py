# Overview: Atomic scope and retry helpers shared by every ledger write path.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock is taken up front by begin_write_scope instead.
    """
    return query.with_for_update()


def begin_write_scope() -> None:
    """
    Take the database write lock at the start of an atomic scope.

    SQLite only: a deferred transaction that reads first and writes later can
    deadlock against another writer (both hold SHARED, neither can upgrade).
    BEGIN IMMEDIATE serializes writers instead. No-op when the connection is
    already inside a transaction or on other dialects.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if getattr(raw, "in_transaction", False):
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def _retry_attempts() -> int:
    return int(current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3))


# Postgres SQLSTATEs for serialization failure, deadlock and lock_not_available.
_RETRYABLE_PGCODES = {"40001", "40P01", "55P03"}


def is_lock_contention(exc: OperationalError) -> bool:
    """True when exc is another writer holding a lock, not a broken database."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode in _RETRYABLE_PGCODES
    message = str(exc.orig).lower()
    return "database is locked" in message or "database is busy" in message


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Run func inside one atomic scope and commit.

    Any exception rolls the whole scope back: no inventory mutation, movement
    row or document header survives a failed operation. Lock contention is
    retried with exponential backoff; exhausted retries and optimistic-lock
    conflicts (StaleDataError) surface as ConcurrencyConflictError so the
    caller can resubmit. Any other OperationalError propagates unchanged.
    """
    if attempts is None:
        attempts = _retry_attempts()

    for attempt in range(attempts):
        try:
            begin_write_scope()
            result = func()
            db.session.commit()
            return result
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrencyConflictError(
                "Record was modified by another operation; retry the request"
            ) from exc
        except OperationalError as exc:
            db.session.rollback()
            if not is_lock_contention(exc):
                raise
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ConcurrencyConflictError(
                    "Database is busy; retry the request"
                ) from exc
            logger.warning("Transaction attempt %d failed, retrying: %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise ConcurrencyConflictError("Database is busy; retry the request")
