# Overview: Transaction scoping, row locking and storage-error mapping for multi-step writes.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StorageError

logger = logging.getLogger(__name__)


def get_session(session=None):
    """Explicit session if the caller passed one, else the app-context session."""
    return session if session is not None else db.session


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it
    by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write(session) -> None:
    """
    Open the current transaction as a writer.

    On SQLite this issues BEGIN IMMEDIATE so the read-check-write sequence
    that follows is serialized against other writers. It is a no-op when
    the connection is already inside a transaction, and on other dialects,
    where lock_for_update() does the job per row.
    """
    if session.get_bind().dialect.name != "sqlite":
        return
    raw = session.connection().connection.dbapi_connection
    if raw is not None and not raw.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def transaction(session):
    """
    Scope one logical write operation.

    Commits when the block exits normally; rolls back on any exception
    (business rule or storage failure) and re-raises it unchanged.
    """
    begin_write(session)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("Transaction rolled back", exc_info=True)
        raise


def run_atomic(func, *, session=None):
    """
    Execute one engine operation, mapping storage failures to StorageError.

    OperationalError (database locked, deadlocks) and StaleDataError are
    rolled back and surfaced as a retryable StorageError; business errors
    pass straight through. Nothing is retried here: retrying is the
    caller's decision.
    """
    session = get_session(session)
    try:
        return func()
    except (OperationalError, StaleDataError) as exc:
        session.rollback()
        logger.error("Storage failure, operation rolled back: %s", exc)
        raise StorageError("Database is busy, please retry", details={"retryable": True}) from exc
