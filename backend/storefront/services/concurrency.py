# Overview: Transaction scope, row locking and retry helpers shared by the write paths.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; stock writes stay safe there
    because they are conditional UPDATEs (see inventory_service).
    """
    return query.with_for_update()


@contextmanager
def transaction():
    """
    Scoped unit of work on the request's session.

    Commits on clean exit; any exception rolls back every statement issued
    inside the block and is re-raised.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run func() as one transaction, retrying the whole unit on concurrency
    failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic version conflicts). Other exceptions roll back and propagate
    on the first attempt.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            with transaction():
                return func()
        except (OperationalError, StaleDataError):
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transaction conflict, retrying (attempt %s of %s)", attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
