# Overview: Service-layer helpers for concurrency; row locks and bounded retries around database work.

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_NUMBER_CONSTRAINT = "uq_invoices_owner_document_number"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def is_document_number_conflict(exc: IntegrityError) -> bool:
    """
    True when the violation is the per-owner document_number unique constraint.

    PostgreSQL reports the constraint name; SQLite reports the columns.
    """
    message = str(getattr(exc, "orig", exc))
    if DOCUMENT_NUMBER_CONSTRAINT in message:
        return True
    return "UNIQUE constraint failed" in message and "invoices.document_number" in message


def run_with_unique_retry(
    func: Callable[[], T],
    *,
    is_retryable: Callable[[IntegrityError], bool] = is_document_number_conflict,
    attempts: int = 3,
) -> T:
    """
    Run a full allocate-then-persist operation, retrying it on a matching
    uniqueness violation.

    Each retry calls func again from scratch, so a fresh number is
    allocated. Any other IntegrityError is re-raised immediately.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except IntegrityError as exc:
            db.session.rollback()
            if not is_retryable(exc) or attempt >= attempts:
                raise
            logger.warning(
                "Document number collided on insert (attempt %d/%d); retrying with a new number",
                attempt, attempts,
            )
    raise ValueError("attempts must be at least 1")
