# Overview: Transaction boundary, row locking and retry helpers for the service layer.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class TransientConflict(Exception):
    """A write lost a race that a fresh transaction will win; retried like a lock conflict."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start a write transaction.

    On SQLite, BEGIN IMMEDIATE acquires the RESERVED lock before the first
    read so two writers cannot both read a stock row and then update it.
    """
    if db.engine.dialect.name != "sqlite":
        return
    # Flushed, uncommitted caller work already holds the write lock; joining
    # that transaction keeps the pending rows.
    if db.session.connection().connection.driver_connection.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and TransientConflict. Any other
    exception rolls the session back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, TransientConflict) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int | None = None):
    """
    Run func() as one all-or-nothing unit of work.

    func does its reads and writes (flushing as needed) and returns a value;
    the commit happens here. Any exception leaves the store untouched.
    """
    def _op():
        begin_write()
        result = func()
        db.session.commit()
        return result

    return run_with_retry(_op, attempts=attempts)
