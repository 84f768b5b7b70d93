# Overview: Service-layer retry helpers for transient database failures.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ..extensions import db

logger = logging.getLogger(__name__)


def is_transient_error(exc: BaseException) -> bool:
    """
    Narrow allow-list of failures worth retrying: lost connections, pool
    timeouts, lock/deadlock errors. Constraint violations and programming
    errors are never transient.
    """
    if isinstance(exc, (OperationalError, DisconnectionError, PoolTimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on transient failures.

    The session is rolled back before each new attempt, so func must redo all
    of its work (re-read rows, re-apply writes). Non-transient errors and the
    last transient error propagate unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if not is_transient_error(exc):
                raise
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("transient database error, retrying (%s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

