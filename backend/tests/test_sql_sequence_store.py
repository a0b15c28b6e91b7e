# Overview: Pytest coverage for the database-backed sequence store and allocator.

import threading

import pytest
from sqlalchemy.exc import SQLAlchemyError

from invoicer.extensions import db
from invoicer.models import Invoice, SequenceCounter
from invoicer.services import invoice_service, numbering_service
from invoicer.services.numbering_service import (
    AllocationExhaustedError,
    InvalidArgumentError,
    SequenceKey,
    SqlSequenceStore,
    allocate_document_number,
    get_allocator,
)


@pytest.fixture
def store(app):
    return SqlSequenceStore(db.engine)


class TestAtomicIncrement:
    def test_creates_row_then_increments(self, db_session, owner_a, store):
        key = SequenceKey(owner_a.id, 2025, "INV")

        assert store.atomic_increment(key) == 1
        assert store.atomic_increment(key) == 2
        assert store.atomic_increment(key) == 3

        counter = db_session.query(SequenceCounter).filter_by(owner_id=owner_a.id, prefix="INV", year=2025).one()
        assert counter.last == 3

    def test_keys_are_independent(self, db_session, owner_a, owner_b, store):
        assert store.atomic_increment(SequenceKey(owner_a.id, 2025, "INV")) == 1
        assert store.atomic_increment(SequenceKey(owner_a.id, 2025, "QTN")) == 1
        assert store.atomic_increment(SequenceKey(owner_a.id, 2026, "INV")) == 1
        assert store.atomic_increment(SequenceKey(owner_b.id, 2025, "INV")) == 1
        assert store.atomic_increment(SequenceKey(owner_a.id, 2025, "INV")) == 2

        assert db_session.query(SequenceCounter).count() == 4

    def test_row_lock_fallback_creates_then_increments(self, db_session, owner_a, owner_b, store, monkeypatch):
        monkeypatch.setattr(SqlSequenceStore, "UPSERT_DIALECTS", {})
        key = SequenceKey(owner_a.id, 2025, "INV")

        assert [store.atomic_increment(key) for _ in range(3)] == [1, 2, 3]
        assert store.atomic_increment(SequenceKey(owner_a.id, 2025, "QTN")) == 1
        assert store.atomic_increment(SequenceKey(owner_b.id, 2025, "INV")) == 1

        counter = db_session.query(SequenceCounter).filter_by(owner_id=owner_a.id, prefix="INV", year=2025).one()
        assert counter.last == 3

    def test_row_lock_fallback_continues_upserted_counter(self, db_session, owner_a, store, monkeypatch):
        key = SequenceKey(owner_a.id, 2025, "INV")
        store.atomic_increment(key)

        monkeypatch.setattr(SqlSequenceStore, "UPSERT_DIALECTS", {})

        assert store.atomic_increment(key) == 2

    def test_increment_survives_caller_rollback(self, db_session, owner_a, store):
        key = SequenceKey(owner_a.id, 2025, "INV")
        store.atomic_increment(key)
        db_session.rollback()

        assert store.atomic_increment(key) == 2


class TestExists:
    def test_matches_document_and_retained_quotation_numbers(self, db_session, owner_a, owner_b, store):
        db_session.add(Invoice(
            owner_id=owner_a.id,
            doc_type="INVOICE",
            document_number="INV-2025-001",
            quotation_number="QTN-2025-004",
        ))
        db_session.commit()

        assert store.exists(owner_a.id, "INV-2025-001")
        assert store.exists(owner_a.id, "QTN-2025-004")
        assert not store.exists(owner_a.id, "INV-2025-002")
        assert not store.exists(owner_b.id, "INV-2025-001")


class TestDatabaseAllocator:
    def test_uses_app_config(self, app, db_session):
        allocator = get_allocator()

        assert allocator.timezone_name == app.config["NUMBERING_TIMEZONE"]
        assert allocator.max_attempts == app.config["NUMBERING_MAX_ATTEMPTS"]

    def test_sequence_and_types(self, db_session, owner_a, current_year):
        assert allocate_document_number(owner_a.id, "INV") == f"INV-{current_year}-001"
        assert allocate_document_number(owner_a.id, "INV") == f"INV-{current_year}-002"
        assert allocate_document_number(owner_a.id, "QTN") == f"QTN-{current_year}-001"

    def test_skips_number_held_by_legacy_document(self, db_session, owner_a, current_year):
        db_session.add(Invoice(owner_id=owner_a.id, doc_type="INVOICE", document_number=f"INV-{current_year}-001"))
        db_session.commit()

        assert allocate_document_number(owner_a.id, "INV") == f"INV-{current_year}-002"

        counter = db_session.query(SequenceCounter).filter_by(owner_id=owner_a.id, prefix="INV").one()
        assert counter.last == 2

    def test_exhaustion_advances_counter_once_per_attempt(self, db_session, owner_a, current_year):
        for seq in range(1, 4):
            db_session.add(Invoice(owner_id=owner_a.id, doc_type="INVOICE", document_number=f"INV-{current_year}-{seq:03d}"))
        db_session.commit()

        with pytest.raises(AllocationExhaustedError):
            allocate_document_number(owner_a.id, "INV", max_attempts=3)

        db_session.expire_all()
        counter = db_session.query(SequenceCounter).filter_by(owner_id=owner_a.id, prefix="INV").one()
        assert counter.last == 3

    def test_invalid_type_creates_no_counter(self, db_session, owner_a):
        with pytest.raises(InvalidArgumentError):
            allocate_document_number(owner_a.id, "BILL")

        assert db_session.query(SequenceCounter).count() == 0

    def test_store_errors_propagate(self, db_session, owner_a, monkeypatch):
        class Boom(SQLAlchemyError):
            pass

        def broken_increment(self, key):
            raise Boom("database unavailable")

        monkeypatch.setattr(numbering_service.SqlSequenceStore, "atomic_increment", broken_increment)

        with pytest.raises(Boom):
            allocate_document_number(owner_a.id, "INV")


class TestDatabaseConcurrency:
    def test_concurrent_allocations_are_unique(self, app, db_session, owner_a):
        owner_id = owner_a.id
        created = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            with app.app_context():
                try:
                    barrier.wait()
                    for _ in range(5):
                        number = allocate_document_number(owner_id, "INV")
                        with lock:
                            created.append(number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert len(created) == 40
        assert len(set(created)) == 40

        counter = db_session.query(SequenceCounter).filter_by(owner_id=owner_id, prefix="INV").one()
        assert counter.last == 40

    def test_row_lock_fallback_under_threads(self, app, db_session, owner_a, monkeypatch):
        monkeypatch.setattr(SqlSequenceStore, "UPSERT_DIALECTS", {})
        key = SequenceKey(owner_a.id, 2025, "QTN")
        engine = db.engine
        values = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(6)

        def worker():
            store = SqlSequenceStore(engine)
            try:
                barrier.wait()
                for _ in range(5):
                    value = store.atomic_increment(key)
                    with lock:
                        values.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert sorted(values) == list(range(1, 31))

    def test_concurrent_document_creation_stores_distinct_numbers(self, app, db_session, owner_a, current_year):
        owner_id = owner_a.id
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(6)

        def worker(doc_type):
            with app.app_context():
                try:
                    barrier.wait()
                    for _ in range(3):
                        invoice_service.create_document(owner_id, {"type": doc_type})
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(doc_type,)) for doc_type in ["INVOICE", "QUOTE"] * 3]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        db_session.expire_all()
        numbers = [row.document_number for row in db_session.query(Invoice).filter_by(owner_id=owner_id)]
        assert len(numbers) == 18
        assert len(set(numbers)) == 18
        assert sorted(n for n in numbers if n.startswith("INV")) == [
            f"INV-{current_year}-{seq:03d}" for seq in range(1, 10)
        ]
