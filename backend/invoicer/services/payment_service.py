# Overview: Service-layer operations for payments; encapsulates business logic and database work.

"""
Payment Recording Service

Payments add to an invoice's advance_paid_cents and drive the invoice and
customer statuses:
- Invoice: PENDING -> PARTIAL -> PAID
- Customer: UNPAID / PARTIAL / PAID roll-up of its invoices

Quotations cannot take payments until converted.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Invoice, Payment
from ..models.documents import DOC_TYPE_INVOICE
from invoicer.time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .customer_service import refresh_customer_status
from .invoice_service import compute_invoice_status


logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised for payment operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PaymentNotFoundError(PaymentError):
    pass


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_BANK = "BANK"
METHOD_UPI = "UPI"
METHOD_CARD = "CARD"
METHOD_CHEQUE = "CHEQUE"
METHOD_OTHER = "OTHER"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_BANK,
    METHOD_UPI,
    METHOD_CARD,
    METHOD_CHEQUE,
    METHOD_OTHER,
]


def record_payment(
    owner_id: int,
    invoice_id: int,
    amount_cents: int,
    method: str | None = None,
    paid_at: str | None = None,
    note: str | None = None,
) -> tuple[Payment, Invoice]:
    """
    Record money received against an invoice.

    Returns (payment, invoice) after updating the invoice's paid amount,
    its status, and the customer's status.

    Raises:
        PaymentError: invalid amount/method/date, or the document is a quotation
        PaymentNotFoundError: invoice missing or owned by someone else
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise PaymentError("amount_cents must be a positive integer")

    if method is not None and not isinstance(method, str):
        raise PaymentError("method must be a string")
    method = (method or METHOD_OTHER).upper()
    if method not in VALID_METHODS:
        raise PaymentError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")

    try:
        paid_at_dt = parse_iso_datetime(paid_at) or utcnow()
    except (TypeError, ValueError):
        raise PaymentError("paid_at must be an ISO-8601 datetime")

    if note is not None and not isinstance(note, str):
        raise PaymentError("note must be a string")

    def _op():
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, owner_id=owner_id)
        ).first()
        if not invoice:
            raise PaymentNotFoundError("Invoice not found")
        if invoice.doc_type != DOC_TYPE_INVOICE:
            raise PaymentError("Quotations cannot take payments; convert to an invoice first")

        payment = Payment(
            invoice_id=invoice.id,
            owner_id=owner_id,
            method=method,
            amount_cents=amount_cents,
            paid_at=paid_at_dt,
            note=note or None,
        )
        db.session.add(payment)

        invoice.advance_paid_cents += amount_cents
        invoice.status = compute_invoice_status(invoice.advance_paid_cents, invoice.grand_total_cents)
        refresh_customer_status(invoice.customer_id)

        db.session.commit()
        return payment, invoice

    payment, invoice = run_with_retry(_op)
    logger.info(
        "Recorded %s payment of %d against %s (status %s)",
        method, amount_cents, invoice.document_number, invoice.status,
    )
    return payment, invoice


def list_payments(owner_id: int, invoice_id: int | None = None) -> list[Payment]:
    query = db.session.query(Payment).filter(Payment.owner_id == owner_id)
    if invoice_id:
        query = query.filter(Payment.invoice_id == invoice_id)
    return query.order_by(Payment.paid_at.desc(), Payment.id.desc()).all()
