# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Customer, Invoice, User


CUSTOMER_STATUS_UNPAID = "UNPAID"
CUSTOMER_STATUS_PARTIAL = "PARTIAL"
CUSTOMER_STATUS_PAID = "PAID"

EDITABLE_FIELDS = (
    "name",
    "company",
    "email",
    "phone",
    "address",
    "pan_number",
    "gst_number",
    "state_name",
    "state_code",
)


class CustomerError(Exception):
    """Raised for customer operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CustomerNotFoundError(CustomerError):
    pass


class CustomerAccessError(CustomerError):
    pass


def _clean(value, field: str = "value"):
    if value is None:
        return None
    if not isinstance(value, str):
        raise CustomerError(f"{field} must be a string", details={"field": field})
    return value.strip() or None


def create_customer(owner_id: int, data: dict) -> Customer:
    name = _clean(data.get("name"), "name")
    if not name:
        raise CustomerError("name is required")

    customer = Customer(owner_id=owner_id, name=name)
    for field in EDITABLE_FIELDS[1:]:
        setattr(customer, field, _clean(data.get(field), field))

    db.session.add(customer)
    db.session.commit()
    return customer


def list_customers(owner_id: int) -> list[Customer]:
    return (
        db.session.query(Customer)
        .filter_by(owner_id=owner_id)
        .order_by(Customer.name.asc(), Customer.id.asc())
        .all()
    )


def get_owned_customer(owner_id: int, customer_id: int) -> Customer:
    """Customer owned by owner_id; foreign customers look like missing ones."""
    customer = db.session.query(Customer).filter_by(id=customer_id, owner_id=owner_id).first()
    if not customer:
        raise CustomerNotFoundError("Customer not found")
    return customer


def _get_editable_customer(actor: User, customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise CustomerNotFoundError("Customer not found")
    if customer.owner_id != actor.id and not actor.is_admin:
        raise CustomerAccessError("Not authorized")
    return customer


def update_customer(actor: User, customer_id: int, data: dict) -> Customer:
    """Partial update: only keys present in data are touched. Admins may edit any customer."""
    customer = _get_editable_customer(actor, customer_id)

    changes = {field: _clean(data[field], field) for field in EDITABLE_FIELDS if field in data}
    if "name" in changes and not changes["name"]:
        raise CustomerError("name cannot be empty")

    for field, value in changes.items():
        setattr(customer, field, value)

    db.session.commit()
    return customer


def delete_customer(actor: User, customer_id: int) -> None:
    customer = _get_editable_customer(actor, customer_id)

    invoice_count = db.session.query(Invoice).filter_by(customer_id=customer.id).count()
    if invoice_count:
        raise CustomerError(
            "Customer has invoices and cannot be deleted",
            details={"invoice_count": invoice_count},
        )

    db.session.delete(customer)
    db.session.commit()


def compute_customer_status(invoice_statuses: list[str]) -> str:
    """
    Roll up invoice statuses:
    - no invoices -> UNPAID
    - all PAID -> PAID
    - any PAID or PARTIAL -> PARTIAL
    - otherwise UNPAID
    """
    if not invoice_statuses:
        return CUSTOMER_STATUS_UNPAID
    if all(status == "PAID" for status in invoice_statuses):
        return CUSTOMER_STATUS_PAID
    if any(status in ("PAID", "PARTIAL") for status in invoice_statuses):
        return CUSTOMER_STATUS_PARTIAL
    return CUSTOMER_STATUS_UNPAID


def refresh_customer_status(customer_id: int | None) -> str | None:
    """Recompute a customer's status from its invoices. Caller commits."""
    if not customer_id:
        return None
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return None

    statuses = [
        row.status
        for row in db.session.query(Invoice.status)
        .filter(Invoice.customer_id == customer_id, Invoice.doc_type == "INVOICE")
        .all()
    ]
    customer.status = compute_customer_status(statuses)
    return customer.status
