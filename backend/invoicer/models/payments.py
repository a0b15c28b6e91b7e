from __future__ import annotations

from ..extensions import db
from invoicer.time_utils import to_utc_z


class Payment(db.Model):
    """Money received against an invoice."""
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_owner_paid_at", "owner_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    method = db.Column(db.String(16), nullable=False, default="OTHER")
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "owner_id": self.owner_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
