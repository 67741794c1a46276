# Overview: Transaction and row-lock helpers shared by the ledger services.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from backoffice.errors import LockTimeout


# PostgreSQL SQLSTATEs: lock_not_available, serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = {"55P03", "40001", "40P01"}
_RETRYABLE_MESSAGES = (
    "database is locked",
    "lock timeout",
    "could not obtain lock",
    "deadlock",
    "could not serialize",
    "canceling statement due to statement timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes sure the locked read refreshes objects already
    in the identity map instead of returning stale attribute values.
    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_locked_transaction()
    takes the database write lock up front there instead.
    """
    return query.with_for_update().populate_existing()


def _session_in_transaction() -> bool:
    return db.session().in_transaction()


def begin_locked_transaction(*, serializable: bool = False, lock_timeout_ms: int | None = None):
    """
    Prepare the current session for a short locked write.

    - SQLite: BEGIN IMMEDIATE (takes the write lock now; the driver's busy
      timeout bounds the wait).
    - PostgreSQL: SERIALIZABLE when the transaction is fresh, plus
      lock_timeout / statement_timeout for this transaction only.
    """
    bind = db.session.get_bind()
    dialect = bind.dialect.name

    if lock_timeout_ms is None:
        lock_timeout_ms = current_app.config.get("STOCK_LOCK_TIMEOUT_MS", 5000)
    statement_timeout_ms = current_app.config.get("TRANSACTION_TIMEOUT_MS", 10000)

    fresh = not _session_in_transaction()
    conn = db.session.connection()

    if dialect == "sqlite":
        raw = conn.connection.driver_connection
        if not raw.in_transaction:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        return

    if dialect == "postgresql":
        if serializable and fresh:
            conn.execute(text("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"))
        conn.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))
        conn.execute(text(f"SET LOCAL statement_timeout = {int(statement_timeout_ms)}"))


def is_lock_error(exc: BaseException) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


@contextmanager
def translate_lock_errors(resource: str = "row"):
    """Roll back and raise LockTimeout for lock/serialization failures."""
    try:
        yield
    except DBAPIError as exc:
        if not is_lock_error(exc):
            raise
        db.session.rollback()
        raise LockTimeout(
            f"timed out waiting for lock on {resource}",
            details={"resource": resource},
        ) from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on LockTimeout and StaleDataError (optimistic locking conflicts).
    Only for idempotent operations; the services never call this themselves.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (LockTimeout, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def get_or_create_locked(model, defaults: dict | None = None, **keys):
    """
    Locked get-or-create on a unique key, without commit.

    The insert runs in a SAVEPOINT; a concurrent creator's IntegrityError
    falls back to reading the winner's row.
    """
    row = lock_for_update(db.session.query(model).filter_by(**keys)).one_or_none()
    if row is not None:
        return row
    try:
        with db.session.begin_nested():
            row = model(**keys, **(defaults or {}))
            db.session.add(row)
    except IntegrityError:
        row = lock_for_update(db.session.query(model).filter_by(**keys)).one()
    return row
