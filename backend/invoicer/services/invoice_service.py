# Overview: Service-layer operations for invoices and quotations; encapsulates business logic and database work.

"""
Invoice and Quotation Service

Invoices and quotations share one table. Each gets its number from
numbering_service at creation (INV-/QTN-), and converting a quotation
allocates a fresh INV number. Creation and conversion run as a whole
allocate-then-persist unit that is retried when the insert trips the
per-owner document_number unique constraint.

MONEY: integer minor units throughout. GST is a per-line rate in basis
points applied to the line amount after its discount, rounded half up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Invoice, InvoiceItem
from ..models.documents import (
    DOC_TYPE_INVOICE,
    DOC_TYPE_QUOTE,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_PENDING,
)
from invoicer.time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry, run_with_unique_retry
from .customer_service import CustomerNotFoundError, get_owned_customer, refresh_customer_status
from .numbering_service import PREFIX_INVOICE, PREFIX_QUOTATION, get_allocator


logger = logging.getLogger(__name__)


PREFIX_BY_DOC_TYPE = {
    DOC_TYPE_INVOICE: PREFIX_INVOICE,
    DOC_TYPE_QUOTE: PREFIX_QUOTATION,
}

MAX_TAX_RATE_BPS = 10000


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvoiceNotFoundError(InvoiceError):
    pass


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    advance_cents: int
    grand_total_cents: int

    @property
    def balance_due_cents(self) -> int:
        return self.grand_total_cents - self.advance_cents


# =============================================================================
# CALCULATIONS
# =============================================================================

def _round_half_up_bps(amount_cents: int, rate_bps: int) -> int:
    return (amount_cents * rate_bps + 5000) // 10000


def compute_totals(items: list[dict], advance_cents: int = 0) -> Totals:
    """
    Totals for a list of parsed line items.

    Per line: gross = quantity * unit_price, base = gross - discount,
    tax = base * rate. Advance is the sum of per-line advances plus the
    document-level advance.
    """
    subtotal = discount = tax = advance = 0
    for item in items:
        gross = item["quantity"] * item["unit_price_cents"]
        line_discount = item.get("discount_cents") or 0
        subtotal += gross
        discount += line_discount
        if item.get("tax_rate_bps"):
            tax += _round_half_up_bps(gross - line_discount, item["tax_rate_bps"])
        advance += item.get("advance_cents") or 0

    advance += advance_cents
    return Totals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        advance_cents=advance,
        grand_total_cents=subtotal - discount + tax,
    )


def compute_invoice_status(paid_cents: int, grand_total_cents: int) -> str:
    if grand_total_cents <= 0:
        return STATUS_PAID
    if paid_cents <= 0:
        return STATUS_PENDING
    if paid_cents >= grand_total_cents:
        return STATUS_PAID
    return STATUS_PARTIAL


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_int(value, field: str, *, minimum: int = 0, maximum: int | None = None, default=None):
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvoiceError(f"{field} must be an integer", details={"field": field})
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvoiceError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float) and value != parsed:
        raise InvoiceError(f"{field} must be a whole number", details={"field": field})
    if parsed < minimum or (maximum is not None and parsed > maximum):
        raise InvoiceError(
            f"{field} out of range",
            details={"field": field, "minimum": minimum, "maximum": maximum},
        )
    return parsed


def _parse_text(value, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvoiceError(f"{field} must be a string", details={"field": field})
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise InvoiceError(f"{field} is too long", details={"field": field, "max_length": max_length})
    return value or None


def _parse_item(raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise InvoiceError("Each item must be an object", details={"index": index})

    def field(name: str) -> str:
        return f"items[{index}].{name}"

    item = {
        "description": _parse_text(raw.get("description"), field("description"), max_length=512) or "",
        "category": _parse_text(raw.get("category"), field("category"), max_length=128),
        "hsn": _parse_text(raw.get("hsn"), field("hsn"), max_length=16),
        "remark": _parse_text(raw.get("remark"), field("remark")),
        "quantity": _parse_int(raw.get("quantity"), field("quantity"), minimum=1, default=1),
        "unit_price_cents": _parse_int(raw.get("unit_price_cents"), field("unit_price_cents"), default=0),
        "tax_rate_bps": _parse_int(raw.get("tax_rate_bps"), field("tax_rate_bps"), maximum=MAX_TAX_RATE_BPS),
        "discount_cents": _parse_int(raw.get("discount_cents"), field("discount_cents")),
        "advance_cents": _parse_int(raw.get("advance_cents"), field("advance_cents")),
    }
    if (item["discount_cents"] or 0) > item["quantity"] * item["unit_price_cents"]:
        raise InvoiceError("Discount exceeds line amount", details={"index": index})
    return item


def parse_items(raw_items) -> list[dict]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise InvoiceError("items must be a list")
    return [_parse_item(raw, index) for index, raw in enumerate(raw_items)]


def _parse_doc_type(value) -> str:
    if value is not None and not isinstance(value, str):
        raise InvoiceError("type must be a string", details={"allowed": list(PREFIX_BY_DOC_TYPE)})
    doc_type = (value or DOC_TYPE_INVOICE).upper()
    if doc_type not in PREFIX_BY_DOC_TYPE:
        raise InvoiceError(
            f"Invalid document type: {value}",
            details={"allowed": list(PREFIX_BY_DOC_TYPE)},
        )
    return doc_type


def _parse_due_date(value):
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise InvoiceError("due_date must be an ISO-8601 date", details={"field": "due_date"})


def _parse_currency(value) -> str | None:
    currency = _parse_text(value, "currency", max_length=8)
    return currency.upper() if currency else None


def _resolve_customer_id(owner_id: int, customer_id) -> int | None:
    customer_id = _parse_int(customer_id, "customer_id", minimum=1)
    if customer_id is None:
        return None
    try:
        return get_owned_customer(owner_id, customer_id).id
    except CustomerNotFoundError:
        raise InvoiceError("Customer not found", details={"customer_id": customer_id})


def _item_dict(item: InvoiceItem) -> dict:
    return {
        "description": item.description,
        "category": item.category,
        "hsn": item.hsn,
        "remark": item.remark,
        "quantity": item.quantity,
        "unit_price_cents": item.unit_price_cents,
        "tax_rate_bps": item.tax_rate_bps,
        "discount_cents": item.discount_cents,
        "advance_cents": item.advance_cents,
    }


def _apply_totals(invoice: Invoice, totals: Totals, payments_cents: int = 0) -> None:
    invoice.subtotal_cents = totals.subtotal_cents
    invoice.discount_cents = totals.discount_cents
    invoice.tax_cents = totals.tax_cents
    invoice.grand_total_cents = totals.grand_total_cents
    invoice.advance_paid_cents = totals.advance_cents + payments_cents
    if invoice.doc_type == DOC_TYPE_INVOICE:
        invoice.status = compute_invoice_status(invoice.advance_paid_cents, invoice.grand_total_cents)
    else:
        invoice.status = STATUS_PENDING


def _create_attempts() -> int:
    return current_app.config.get("DOCUMENT_CREATE_ATTEMPTS", 3)


# =============================================================================
# OPERATIONS
# =============================================================================

def get_document(owner_id: int, invoice_id: int) -> Invoice:
    """Invoice owned by owner_id; other owners' documents look missing."""
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id).first()
    if not invoice:
        raise InvoiceNotFoundError("Invoice not found")
    return invoice


def list_documents(owner_id: int, status: str | None = None, doc_type: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.owner_id == owner_id)
    if status:
        query = query.filter(Invoice.status == status.upper())
    if doc_type:
        query = query.filter(Invoice.doc_type == _parse_doc_type(doc_type))
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def create_document(owner_id: int, data: dict) -> Invoice:
    """
    Create an invoice or quotation with its line items.

    The number is allocated first, then the document is inserted; the pair
    is retried if the insert collides on document_number.
    """
    doc_type = _parse_doc_type(data.get("type"))
    prefix = PREFIX_BY_DOC_TYPE[doc_type]
    customer_id = _resolve_customer_id(owner_id, data.get("customer_id"))
    items = parse_items(data.get("items"))
    totals = compute_totals(items, _parse_int(data.get("advance_paid_cents"), "advance_paid_cents", default=0))
    due_date = _parse_due_date(data.get("due_date"))
    currency = _parse_currency(data.get("currency")) or current_app.config.get("DEFAULT_CURRENCY", "INR").upper()
    remark = _parse_text(data.get("remark"), "remark")

    allocator = get_allocator()

    def _op() -> Invoice:
        invoice = Invoice(
            owner_id=owner_id,
            customer_id=customer_id,
            doc_type=doc_type,
            document_number=allocator.allocate(owner_id, prefix),
            currency=currency,
            due_date=due_date,
            remark=remark,
        )
        invoice.items = [InvoiceItem(**item) for item in items]
        _apply_totals(invoice, totals)
        db.session.add(invoice)
        refresh_customer_status(customer_id)
        db.session.commit()
        return invoice

    invoice = run_with_unique_retry(_op, attempts=_create_attempts())
    logger.info("Created %s %s for owner %s", doc_type, invoice.document_number, owner_id)
    return invoice


def update_document(owner_id: int, invoice_id: int, data: dict) -> Invoice:
    """
    Edit header fields and, when "items" is given, replace all line items.

    The document number and type never change here; use convert_quotation.
    The stored advance becomes the new upfront advance plus recorded payments.
    """
    if "type" in data and data["type"] is not None:
        requested = _parse_doc_type(data["type"])
    else:
        requested = None
    new_items = parse_items(data["items"]) if "items" in data else None
    upfront_advance = _parse_int(data.get("advance_paid_cents"), "advance_paid_cents", default=0)
    due_date = _parse_due_date(data.get("due_date")) if "due_date" in data else None
    remark = _parse_text(data.get("remark"), "remark")
    currency = _parse_currency(data.get("currency"))

    def _op() -> Invoice:
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id)
        ).first()
        if not invoice:
            raise InvoiceNotFoundError("Invoice not found")
        if requested and requested != invoice.doc_type:
            raise InvoiceError(
                "Document type cannot be changed by editing; convert the quotation instead",
                details={"type": invoice.doc_type},
            )

        previous_customer_id = invoice.customer_id
        if data.get("customer_id"):
            invoice.customer_id = _resolve_customer_id(owner_id, data["customer_id"])
        if "due_date" in data:
            invoice.due_date = due_date
        if "remark" in data:
            invoice.remark = remark
        if currency:
            invoice.currency = currency

        if new_items is not None:
            invoice.items = [InvoiceItem(**item) for item in new_items]
            items = new_items
        else:
            items = [_item_dict(item) for item in invoice.items]

        payments_cents = sum(payment.amount_cents for payment in invoice.payments)
        _apply_totals(invoice, compute_totals(items, upfront_advance), payments_cents)

        refresh_customer_status(invoice.customer_id)
        if previous_customer_id != invoice.customer_id:
            refresh_customer_status(previous_customer_id)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def delete_document(owner_id: int, invoice_id: int) -> None:
    """Delete a document together with its items and payments."""
    invoice = get_document(owner_id, invoice_id)
    customer_id = invoice.customer_id
    number = invoice.document_number

    db.session.delete(invoice)
    db.session.flush()
    refresh_customer_status(customer_id)
    db.session.commit()
    logger.info("Deleted document %s for owner %s", number, owner_id)


def convert_quotation(owner_id: int, invoice_id: int) -> Invoice:
    """
    Turn a quotation into an invoice under a freshly allocated INV number.

    The QTN number is kept in quotation_number. Converting an invoice is a
    no-op that returns it unchanged.
    """
    invoice = get_document(owner_id, invoice_id)
    if invoice.doc_type == DOC_TYPE_INVOICE:
        return invoice

    allocator = get_allocator()

    def _op() -> Invoice:
        quote = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id)
        ).first()
        if not quote:
            raise InvoiceNotFoundError("Invoice not found")
        if quote.doc_type == DOC_TYPE_INVOICE:
            # Converted by a concurrent request
            return quote

        quote.quotation_number = quote.document_number
        quote.document_number = allocator.allocate(owner_id, PREFIX_INVOICE)
        quote.doc_type = DOC_TYPE_INVOICE
        quote.converted_at = utcnow()
        quote.status = compute_invoice_status(quote.advance_paid_cents, quote.grand_total_cents)
        refresh_customer_status(quote.customer_id)
        db.session.commit()
        return quote

    converted = run_with_retry(lambda: run_with_unique_retry(_op, attempts=_create_attempts()))
    logger.info(
        "Converted quotation %s to invoice %s for owner %s",
        converted.quotation_number, converted.document_number, owner_id,
    )
    return converted
