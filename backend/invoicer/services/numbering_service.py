# Overview: Service-layer operations for document numbering; allocates unique per-owner, per-year document numbers.

"""
Document Number Allocation

WHY: Invoice and quotation numbers (INV-2025-001, QTN-2025-042) must be
unique per owner even when several requests, threads or processes create
documents at the same time against one database.

DESIGN:
- One counter row per (owner, prefix, year), created lazily.
- The counter is advanced with a single atomic upsert that returns the new
  value. Two callers can never receive the same value.
- The increment is committed on its own connection, so a caller that later
  rolls back does not hand its number back. Gaps are accepted; reuse is not.
- A candidate that collides with an existing document (legacy rows, a
  counter reset by hand) is discarded and the counter is advanced again,
  up to max_attempts.
- Years are computed in the configured numbering timezone, never in the
  server's local time.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from flask import current_app
from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, SequenceCounter
from invoicer.time_utils import aware_utcnow, year_in_timezone


logger = logging.getLogger(__name__)


PREFIX_INVOICE = "INV"
PREFIX_QUOTATION = "QTN"

VALID_PREFIXES = (PREFIX_INVOICE, PREFIX_QUOTATION)

DEFAULT_MAX_ATTEMPTS = 10
MIN_SEQUENCE_DIGITS = 3

DOCUMENT_NUMBER_PATTERN = re.compile(r"^(INV|QTN)-(\d{4})-(\d{3,})$")


class NumberingError(Exception):
    """Raised when a document number cannot be produced."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvalidArgumentError(NumberingError):
    """Unsupported document type or malformed allocation request."""


class AllocationExhaustedError(NumberingError):
    """Every candidate within max_attempts collided with an existing document."""


@dataclass(frozen=True)
class SequenceKey:
    owner_id: int
    year: int
    prefix: str


class SequenceStore(Protocol):
    """Backing store the allocator coordinates through."""

    def atomic_increment(self, key: SequenceKey) -> int:
        """Create the counter at 1 or add 1, returning the new value in one atomic step."""
        ...

    def exists(self, owner_id: int, document_number: str) -> bool:
        ...


def format_document_number(prefix: str, year: int, seq: int) -> str:
    """INV-2025-001; the sequence grows past three digits instead of wrapping."""
    return f"{prefix}-{year}-{seq:0{MIN_SEQUENCE_DIGITS}d}"


def parse_document_number(number: str) -> tuple[str, int, int]:
    match = DOCUMENT_NUMBER_PATTERN.match(number or "")
    if not match:
        raise InvalidArgumentError(f"Malformed document number: {number!r}")
    prefix, year, seq = match.groups()
    return prefix, int(year), int(seq)


# =============================================================================
# STORES
# =============================================================================

class InMemorySequenceStore:
    """
    Process-local store for tests and tooling.

    A single lock makes increment-and-read atomic across threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[SequenceKey, int] = {}
        self._documents: set[tuple[int, str]] = set()
        self.increment_calls = 0
        self.exists_calls = 0

    def atomic_increment(self, key: SequenceKey) -> int:
        with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            self.increment_calls += 1
            return value

    def exists(self, owner_id: int, document_number: str) -> bool:
        with self._lock:
            self.exists_calls += 1
            return (owner_id, document_number) in self._documents

    def seed_document(self, owner_id: int, document_number: str) -> None:
        with self._lock:
            self._documents.add((owner_id, document_number))

    def peek(self, key: SequenceKey) -> int:
        with self._lock:
            return self._counters.get(key, 0)


class SqlSequenceStore:
    """
    Counter store backed by the sequence_counters table.

    PostgreSQL and SQLite use INSERT .. ON CONFLICT DO UPDATE .. RETURNING.
    Other dialects fall back to UPDATE-then-read inside one transaction,
    where the UPDATE's row lock serializes concurrent callers.
    """

    UPSERT_DIALECTS = {
        "postgresql": postgresql.insert,
        "sqlite": sqlite.insert,
    }

    def __init__(self, engine: Engine):
        self.engine = engine

    def atomic_increment(self, key: SequenceKey) -> int:
        insert_fn = self.UPSERT_DIALECTS.get(self.engine.dialect.name)
        with self.engine.begin() as conn:
            if insert_fn is not None:
                return conn.execute(self._upsert_statement(insert_fn, key)).scalar_one()
            return self._increment_with_row_lock(conn, key)

    def exists(self, owner_id: int, document_number: str) -> bool:
        stmt = (
            select(Invoice.id)
            .where(
                Invoice.owner_id == owner_id,
                or_(
                    Invoice.document_number == document_number,
                    Invoice.quotation_number == document_number,
                ),
            )
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).first() is not None

    def _upsert_statement(self, insert_fn, key: SequenceKey):
        table = SequenceCounter.__table__
        stmt = insert_fn(table).values(
            owner_id=key.owner_id,
            prefix=key.prefix,
            year=key.year,
            last=1,
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.owner_id, table.c.prefix, table.c.year],
            set_={"last": table.c.last + 1, "updated_at": db.func.now()},
        ).returning(table.c.last)

    def _increment_with_row_lock(self, conn: Connection, key: SequenceKey) -> int:
        table = SequenceCounter.__table__
        where = (
            (table.c.owner_id == key.owner_id)
            & (table.c.prefix == key.prefix)
            & (table.c.year == key.year)
        )
        bump = update(table).where(where).values(last=table.c.last + 1, updated_at=db.func.now())

        if not conn.execute(bump).rowcount:
            try:
                with conn.begin_nested():
                    conn.execute(
                        table.insert().values(
                            owner_id=key.owner_id,
                            prefix=key.prefix,
                            year=key.year,
                            last=1,
                        )
                    )
                return 1
            except IntegrityError:
                # Lost the race to create the row; it exists now.
                if not conn.execute(bump).rowcount:
                    raise

        return conn.execute(select(table.c.last).where(where)).scalar_one()


# =============================================================================
# ALLOCATOR
# =============================================================================

class DocumentNumberAllocator:
    """
    Produces document numbers that are unique per owner.

    Holds no in-process locks; all coordination goes through the store, so
    one allocator per process (or per request) is safe.
    """

    def __init__(
        self,
        store: SequenceStore,
        *,
        clock: Callable[[], datetime] = aware_utcnow,
        timezone_name: str = "UTC",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.store = store
        self.clock = clock
        self.timezone_name = timezone_name
        self.max_attempts = _validate_attempts(max_attempts)

    def current_year(self) -> int:
        return year_in_timezone(self.clock(), self.timezone_name)

    def allocate(self, owner_id: int, document_type: str, max_attempts: int | None = None) -> str:
        """
        Reserve and return the next free number for (owner, document_type, year).

        Raises:
            InvalidArgumentError: unknown document type, missing owner or bad
                attempt bound. Raised before the store is touched.
            AllocationExhaustedError: every candidate collided.

        Store errors propagate unchanged.
        """
        if isinstance(owner_id, bool) or not isinstance(owner_id, int) or owner_id < 1:
            raise InvalidArgumentError(f"owner_id must be a positive integer, got {owner_id!r}")
        if document_type not in VALID_PREFIXES:
            raise InvalidArgumentError(
                f"Unsupported document type: {document_type!r}",
                details={"allowed": list(VALID_PREFIXES)},
            )
        attempts = self.max_attempts if max_attempts is None else _validate_attempts(max_attempts)

        year = None
        for attempt in range(1, attempts + 1):
            year = self.current_year()
            seq = self.store.atomic_increment(SequenceKey(owner_id, year, document_type))
            candidate = format_document_number(document_type, year, seq)

            if not self.store.exists(owner_id, candidate):
                return candidate

            logger.warning(
                "Document number %s already taken for owner %s (attempt %d/%d); skipping",
                candidate, owner_id, attempt, attempts,
            )

        logger.error(
            "Could not allocate a %s number for owner %s after %d attempts",
            document_type, owner_id, attempts,
        )
        raise AllocationExhaustedError(
            "Could not generate a unique document number, please retry",
            details={
                "owner_id": owner_id,
                "document_type": document_type,
                "year": year,
                "attempts": attempts,
            },
        )


def _validate_attempts(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidArgumentError(f"max_attempts must be a positive integer, got {value!r}")
    return value


def get_allocator() -> DocumentNumberAllocator:
    """Allocator over the application database, configured from app config."""
    config = current_app.config
    return DocumentNumberAllocator(
        SqlSequenceStore(db.engine),
        timezone_name=config.get("NUMBERING_TIMEZONE", "UTC"),
        max_attempts=config.get("NUMBERING_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
    )


def allocate_document_number(owner_id: int, document_type: str, max_attempts: int | None = None) -> str:
    return get_allocator().allocate(owner_id, document_type, max_attempts=max_attempts)
