# Overview: Pytest coverage for invoice/quotation totals, numbering, editing, and conversion.

import pytest
from sqlalchemy.exc import IntegrityError

from invoicer.models import Invoice
from invoicer.services import invoice_service, numbering_service
from invoicer.services.concurrency import is_document_number_conflict, run_with_unique_retry
from invoicer.services.invoice_service import (
    InvoiceError,
    InvoiceNotFoundError,
    compute_invoice_status,
    compute_totals,
    parse_items,
)


def _item(quantity=1, unit_price_cents=10000, **extra):
    return {"description": "Widget", "quantity": quantity, "unit_price_cents": unit_price_cents, **extra}


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO invoices ...", {}, Exception(message))


class TestComputeTotals:
    def test_gst_after_discount(self):
        items = parse_items([_item(quantity=2, unit_price_cents=50000, discount_cents=10000, tax_rate_bps=1800)])
        totals = compute_totals(items)

        assert totals.subtotal_cents == 100000
        assert totals.discount_cents == 10000
        assert totals.tax_cents == 16200
        assert totals.grand_total_cents == 106200

    def test_tax_rounds_half_up(self):
        # 25 * 2% = 0.5 -> 1
        totals = compute_totals(parse_items([_item(unit_price_cents=25, tax_rate_bps=200)]))
        assert totals.tax_cents == 1

    def test_advance_sums_lines_and_document(self):
        items = parse_items([_item(advance_cents=1000), _item(advance_cents=500)])
        totals = compute_totals(items, advance_cents=250)

        assert totals.advance_cents == 1750
        assert totals.balance_due_cents == 20000 - 1750

    def test_empty_items(self):
        totals = compute_totals([])
        assert totals.grand_total_cents == 0

    @pytest.mark.parametrize("raw", [
        _item(quantity=0),
        _item(unit_price_cents=-1),
        _item(tax_rate_bps=10001),
        _item(quantity="two"),
        _item(quantity=1.5),
        _item(unit_price_cents=100, discount_cents=101),
        _item(description=5),
        _item(hsn=["9983"]),
        _item(remark={"note": "x"}),
    ])
    def test_invalid_items_rejected(self, raw):
        with pytest.raises(InvoiceError):
            parse_items([raw])


class TestInvoiceStatus:
    @pytest.mark.parametrize("paid,total,expected", [
        (0, 1000, "PENDING"),
        (1, 1000, "PARTIAL"),
        (999, 1000, "PARTIAL"),
        (1000, 1000, "PAID"),
        (1500, 1000, "PAID"),
        (0, 0, "PAID"),
    ])
    def test_status_from_paid_amount(self, paid, total, expected):
        assert compute_invoice_status(paid, total) == expected


class TestCreateDocument:
    def test_invoice_numbers_are_sequential(self, db_session, owner_a, current_year):
        first = invoice_service.create_document(owner_a.id, {"items": [_item()]})
        second = invoice_service.create_document(owner_a.id, {"items": [_item()]})

        assert first.document_number == f"INV-{current_year}-001"
        assert second.document_number == f"INV-{current_year}-002"
        assert first.doc_type == "INVOICE"
        assert first.grand_total_cents == 10000

    def test_quotation_sequence_is_independent(self, db_session, owner_a, current_year):
        invoice_service.create_document(owner_a.id, {"type": "INVOICE"})
        quote = invoice_service.create_document(owner_a.id, {"type": "quote"})

        assert quote.doc_type == "QUOTE"
        assert quote.document_number == f"QTN-{current_year}-001"
        assert quote.status == "PENDING"

    def test_owners_number_independently(self, db_session, owner_a, owner_b, current_year):
        a = invoice_service.create_document(owner_a.id, {})
        b = invoice_service.create_document(owner_b.id, {})

        assert a.document_number == b.document_number == f"INV-{current_year}-001"

    def test_upfront_advance_sets_status(self, db_session, owner_a, customer_a):
        invoice = invoice_service.create_document(owner_a.id, {
            "customer_id": customer_a.id,
            "items": [_item(unit_price_cents=10000)],
            "advance_paid_cents": 4000,
        })

        assert invoice.status == "PARTIAL"
        assert invoice.balance_due_cents == 6000
        assert customer_a.status == "PARTIAL"

    def test_foreign_customer_rejected(self, db_session, owner_a, customer_b):
        with pytest.raises(InvoiceError):
            invoice_service.create_document(owner_a.id, {"customer_id": customer_b.id})

        assert db_session.query(Invoice).count() == 0

    def test_invalid_type_rejected(self, db_session, owner_a):
        with pytest.raises(InvoiceError):
            invoice_service.create_document(owner_a.id, {"type": "RECEIPT"})

    def test_insert_collision_retries_with_new_number(self, db_session, owner_a, current_year, monkeypatch):
        # Pre-check blinded so the unique constraint is the only guard
        monkeypatch.setattr(numbering_service.SqlSequenceStore, "exists", lambda self, owner_id, number: False)
        db_session.add(Invoice(owner_id=owner_a.id, doc_type="INVOICE", document_number=f"INV-{current_year}-001"))
        db_session.commit()

        invoice = invoice_service.create_document(owner_a.id, {"items": [_item()]})

        assert invoice.document_number == f"INV-{current_year}-002"
        assert db_session.query(Invoice).filter_by(owner_id=owner_a.id).count() == 2

    def test_insert_collision_propagates_when_attempts_spent(self, app, db_session, owner_a, current_year, monkeypatch):
        monkeypatch.setattr(numbering_service.SqlSequenceStore, "exists", lambda self, owner_id, number: False)
        monkeypatch.setitem(app.config, "DOCUMENT_CREATE_ATTEMPTS", 1)
        db_session.add(Invoice(owner_id=owner_a.id, doc_type="INVOICE", document_number=f"INV-{current_year}-001"))
        db_session.commit()

        with pytest.raises(IntegrityError):
            invoice_service.create_document(owner_a.id, {})

    def test_exhausted_allocation_creates_nothing(self, db_session, owner_a, monkeypatch):
        monkeypatch.setattr(numbering_service.SqlSequenceStore, "exists", lambda self, owner_id, number: True)

        with pytest.raises(numbering_service.AllocationExhaustedError):
            invoice_service.create_document(owner_a.id, {})

        assert db_session.query(Invoice).count() == 0


class TestUniqueRetry:
    def test_other_integrity_errors_are_not_retried(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise _integrity_error("UNIQUE constraint failed: users.username")

        with pytest.raises(IntegrityError):
            run_with_unique_retry(op, attempts=3)
        assert len(calls) == 1

    def test_retries_until_success(self, db_session):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise _integrity_error("UNIQUE constraint failed: invoices.owner_id, invoices.document_number")
            return "ok"

        assert run_with_unique_retry(op, attempts=3) == "ok"
        assert len(calls) == 3

    @pytest.mark.parametrize("message,expected", [
        ('duplicate key value violates unique constraint "uq_invoices_owner_document_number"', True),
        ("UNIQUE constraint failed: invoices.owner_id, invoices.document_number", True),
        ("UNIQUE constraint failed: users.email", False),
        ("NOT NULL constraint failed: invoices.document_number", False),
    ])
    def test_conflict_detection(self, message, expected):
        assert is_document_number_conflict(_integrity_error(message)) is expected


class TestUpdateDocument:
    def test_edit_keeps_number_and_recomputes(self, db_session, owner_a):
        invoice = invoice_service.create_document(owner_a.id, {"items": [_item()]})
        number = invoice.document_number

        updated = invoice_service.update_document(owner_a.id, invoice.id, {
            "items": [_item(quantity=3, unit_price_cents=1000, tax_rate_bps=500)],
            "remark": "revised",
        })

        assert updated.document_number == number
        assert updated.grand_total_cents == 3150
        assert len(updated.items) == 1
        assert updated.remark == "revised"

    def test_type_change_rejected(self, db_session, owner_a):
        quote = invoice_service.create_document(owner_a.id, {"type": "QUOTE"})

        with pytest.raises(InvoiceError):
            invoice_service.update_document(owner_a.id, quote.id, {"type": "INVOICE"})

    def test_payments_count_toward_advance(self, db_session, owner_a):
        from invoicer.services.payment_service import record_payment

        invoice = invoice_service.create_document(owner_a.id, {"items": [_item(unit_price_cents=10000)]})
        record_payment(owner_a.id, invoice.id, 3000, "UPI")

        updated = invoice_service.update_document(owner_a.id, invoice.id, {"advance_paid_cents": 1000})

        assert updated.advance_paid_cents == 4000
        assert updated.status == "PARTIAL"

    def test_foreign_document_not_found(self, db_session, owner_a, owner_b):
        invoice = invoice_service.create_document(owner_a.id, {})

        with pytest.raises(InvoiceNotFoundError):
            invoice_service.update_document(owner_b.id, invoice.id, {"remark": "x"})


class TestConvertQuotation:
    def test_conversion_allocates_invoice_number(self, db_session, owner_a, current_year):
        invoice_service.create_document(owner_a.id, {"type": "INVOICE"})
        quote = invoice_service.create_document(owner_a.id, {"type": "QUOTE", "items": [_item()]})

        converted = invoice_service.convert_quotation(owner_a.id, quote.id)

        assert converted.id == quote.id
        assert converted.doc_type == "INVOICE"
        assert converted.document_number == f"INV-{current_year}-002"
        assert converted.quotation_number == f"QTN-{current_year}-001"
        assert converted.converted_at is not None
        assert converted.status == "PENDING"

    def test_quotation_number_is_not_reissued(self, db_session, owner_a, current_year):
        quote = invoice_service.create_document(owner_a.id, {"type": "QUOTE"})
        invoice_service.convert_quotation(owner_a.id, quote.id)

        next_quote = invoice_service.create_document(owner_a.id, {"type": "QUOTE"})
        assert next_quote.document_number == f"QTN-{current_year}-002"

    def test_converting_invoice_is_noop(self, db_session, owner_a):
        invoice = invoice_service.create_document(owner_a.id, {})
        number = invoice.document_number

        again = invoice_service.convert_quotation(owner_a.id, invoice.id)

        assert again.document_number == number
        assert again.quotation_number is None

    def test_foreign_quotation_not_found(self, db_session, owner_a, owner_b):
        quote = invoice_service.create_document(owner_a.id, {"type": "QUOTE"})

        with pytest.raises(InvoiceNotFoundError):
            invoice_service.convert_quotation(owner_b.id, quote.id)


class TestDeleteAndList:
    def test_delete_removes_document(self, db_session, owner_a):
        invoice = invoice_service.create_document(owner_a.id, {"items": [_item()]})
        invoice_service.delete_document(owner_a.id, invoice.id)

        assert db_session.query(Invoice).count() == 0

    def test_deleted_number_is_not_reused(self, db_session, owner_a, current_year):
        invoice = invoice_service.create_document(owner_a.id, {})
        invoice_service.delete_document(owner_a.id, invoice.id)

        assert invoice_service.create_document(owner_a.id, {}).document_number == f"INV-{current_year}-002"

    def test_list_filters_by_owner_and_type(self, db_session, owner_a, owner_b):
        invoice_service.create_document(owner_a.id, {})
        invoice_service.create_document(owner_a.id, {"type": "QUOTE"})
        invoice_service.create_document(owner_b.id, {})

        assert len(invoice_service.list_documents(owner_a.id)) == 2
        quotes = invoice_service.list_documents(owner_a.id, doc_type="QUOTE")
        assert [q.doc_type for q in quotes] == ["QUOTE"]
