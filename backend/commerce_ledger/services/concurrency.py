# Overview: Row locking and retry around ledger transactions.

"""
Ledger transaction helpers

Every money or points mutation is written as an inner _op() that reads
with lock_for_update(), mutates and commits, then handed to run_with_retry().

- OperationalError (database locked / deadlock) and StaleDataError
  (version_id mismatch) roll back and re-run _op from a fresh read
- Any other exception rolls back and propagates unchanged
- Gateway calls never happen inside _op, so a retry never repeats one
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on databases that honor it.

    SQLite ignores the clause; version_id columns still reject lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """Run func() as one transaction, retrying on lock and version conflicts."""
    config = current_app.config
    if attempts is None:
        attempts = config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("DB_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error(
                    "Transaction %s gave up after %d attempts: %s",
                    getattr(func, "__qualname__", func), attempts, exc.__class__.__name__,
                )
                raise
            current_app.logger.info(
                "Retrying transaction %s (attempt %d/%d) after %s",
                getattr(func, "__qualname__", func), attempt, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise
