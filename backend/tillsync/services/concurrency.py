# Overview: Service-layer helpers for write locking and retrying contended transactions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    Take the database write lock up front on SQLite.

    WHY: A deferred SQLite transaction only grabs the write lock at its first
    write, so two writers can both read the same counter value first.
    BEGIN IMMEDIATE serializes them before any read happens.
    Other engines rely on lock_for_update() on the rows they touch.
    """
    if db.engine.dialect.name == "sqlite":
        # End any implicit transaction opened by earlier reads in this session
        db.session.rollback()
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = (OperationalError, StaleDataError),
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked, deadlocks) and
    StaleDataError by default; callers may widen retry_on (receipt creation
    adds IntegrityError for racing first inserts).

    The session is rolled back on every failure, retried or not, so a failed
    attempt never leaves partial writes pending.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying contended transaction (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
