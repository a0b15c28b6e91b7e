from __future__ import annotations

from ..extensions import db
from invoicer.time_utils import to_utc_z


LEDGER_METHOD_CASH = "CASH"
LEDGER_METHOD_BANK = "BANK"

TXN_INCOME = "INCOME"
TXN_EXPENSE = "EXPENSE"


class PaymentLedger(db.Model):
    """Owner-defined category for cash book entries (rent, salaries, ...)."""
    __tablename__ = "payment_ledgers"
    __table_args__ = (
        db.Index("ix_payment_ledgers_owner_id", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    category = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }


class StartingBalance(db.Model):
    """
    Opening balance of one money account (cash or bank).

    At most one row per (owner, method); running balances start here.
    """
    __tablename__ = "starting_balances"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "method", name="uq_starting_balances_owner_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    method = db.Column(db.String(8), nullable=False)
    # May be negative (overdrawn account)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LedgerTransaction(db.Model):
    """Cash book entry: money in (INCOME) or out (EXPENSE) of the cash or bank account."""
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.Index("ix_ledger_transactions_owner_occurred", "owner_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    type = db.Column(db.String(16), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(8), nullable=False, default=LEDGER_METHOD_CASH)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    description = db.Column(db.Text, nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == TXN_INCOME else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "type": self.type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "occurred_at": to_utc_z(self.occurred_at),
            "description": self.description,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
