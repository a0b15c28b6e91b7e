from __future__ import annotations

from ..extensions import db
from invoicer.time_utils import to_utc_z


class Customer(db.Model):
    """
    Billing contact owned by a single user.

    `status` is a denormalized roll-up of the customer's invoice statuses
    (UNPAID / PARTIAL / PAID), refreshed whenever a payment is recorded.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_owner_id", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Indian tax identifiers printed on invoices
    pan_number = db.Column(db.String(16), nullable=True)
    gst_number = db.Column(db.String(16), nullable=True)
    state_name = db.Column(db.String(64), nullable=True)
    state_code = db.Column(db.String(8), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="UNPAID")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("User", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "pan_number": self.pan_number,
            "gst_number": self.gst_number,
            "state_name": self.state_name,
            "state_code": self.state_code,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
