# Overview: Retry wrapper for database work; maps exhausted retries to StoreUnavailableError.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StoreUnavailableError
from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locked database, dropped connection) and
    StaleDataError (optimistic locking conflicts). When every attempt fails
    the error surfaces as StoreUnavailableError; the caller's operation (one
    request or one sweep tick) is aborted and the process keeps running.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StoreUnavailableError("Data store unavailable") from exc
            time.sleep(backoff_base * (2 ** attempt))
