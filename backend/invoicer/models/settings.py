from __future__ import annotations

from ..extensions import db
from invoicer.time_utils import to_utc_z


class CompanySettings(db.Model):
    """
    Letterhead and tax defaults printed on an owner's documents.

    One row per owner, created on first save.
    """
    __tablename__ = "company_settings"
    __table_args__ = (
        db.UniqueConstraint("owner_id", name="uq_company_settings_owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    name = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    contact = db.Column(db.String(255), nullable=True)
    gst_number = db.Column(db.String(16), nullable=True)
    pan_number = db.Column(db.String(16), nullable=True)
    currency = db.Column(db.String(8), nullable=True)
    # Default tax in basis points (1800 = 18%)
    tax_rate_bps = db.Column(db.Integer, nullable=True)
    tax_type = db.Column(db.String(16), nullable=True)
    state_name = db.Column(db.String(64), nullable=True)
    state_code = db.Column(db.String(8), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "address": self.address,
            "contact": self.contact,
            "gst_number": self.gst_number,
            "pan_number": self.pan_number,
            "currency": self.currency,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_type": self.tax_type,
            "state_name": self.state_name,
            "state_code": self.state_code,
            "updated_at": to_utc_z(self.updated_at),
        }
