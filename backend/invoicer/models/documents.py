from __future__ import annotations

from ..extensions import db
from invoicer.time_utils import to_utc_z


DOC_TYPE_INVOICE = "INVOICE"
DOC_TYPE_QUOTE = "QUOTE"

STATUS_PENDING = "PENDING"
STATUS_PARTIAL = "PARTIAL"
STATUS_PAID = "PAID"


class SequenceCounter(db.Model):
    """
    Last issued document sequence value per (owner, prefix, year).

    Only ever mutated through the atomic upsert in numbering_service;
    rows are never deleted so a year's numbers are never reissued.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "prefix", "year", name="uq_sequence_counters_owner_prefix_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    prefix = db.Column(db.String(8), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    last = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "prefix": self.prefix,
            "year": self.year,
            "last": self.last,
            "updated_at": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """
    Invoice or quotation document.

    Quotations are stored in the same table with doc_type=QUOTE and a QTN
    number. Converting a quotation allocates a fresh INV number; the QTN
    number is kept in quotation_number.

    Money is stored in integer minor units (paise/cents).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "document_number", name="uq_invoices_owner_document_number"),
        db.Index("ix_invoices_owner_status", "owner_id", "status"),
        db.Index("ix_invoices_customer_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    doc_type = db.Column(db.String(16), nullable=False, default=DOC_TYPE_INVOICE)
    document_number = db.Column(db.String(32), nullable=False)
    quotation_number = db.Column(db.String(32), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    remark = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    # Advance collected at creation plus every recorded payment
    advance_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    owner = db.relationship("User", backref=db.backref("invoices", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = db.relationship(
        "Payment",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due_cents(self) -> int:
        return self.grand_total_cents - self.advance_paid_cents

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "customer_id": self.customer_id,
            "type": self.doc_type,
            "document_number": self.document_number,
            "quotation_number": self.quotation_number,
            "status": self.status,
            "currency": self.currency,
            "due_date": to_utc_z(self.due_date),
            "remark": self.remark,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "grand_total_cents": self.grand_total_cents,
            "advance_paid_cents": self.advance_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "converted_at": to_utc_z(self.converted_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    description = db.Column(db.String(512), nullable=False, default="")
    category = db.Column(db.String(128), nullable=True)
    hsn = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    # GST rate in basis points (1800 = 18%)
    tax_rate_bps = db.Column(db.Integer, nullable=True)
    discount_cents = db.Column(db.Integer, nullable=True)
    advance_cents = db.Column(db.Integer, nullable=True)
    remark = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "category": self.category,
            "hsn": self.hsn,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_cents": self.discount_cents,
            "advance_cents": self.advance_cents,
            "remark": self.remark,
        }


class QuotationCategory(db.Model):
    """Reusable quotation line template: category name, HSN code and a default price."""
    __tablename__ = "quotation_categories"
    __table_args__ = (
        db.Index("ix_quotation_categories_owner_id", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    category = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    hsn = db.Column(db.String(16), nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "category": self.category,
            "description": self.description,
            "hsn": self.hsn,
            "price_cents": self.price_cents,
            "created_at": to_utc_z(self.created_at),
        }
