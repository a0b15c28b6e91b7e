# Overview: Service-layer operations for the cash book; categories, opening balances and income/expense entries.

"""
Cash Book Service

Owners track money outside invoices in two accounts, CASH and BANK:
- PaymentLedger rows are the owner's category names for entries
- StartingBalance holds the opening amount of each account (one per method)
- LedgerTransaction rows move money in (INCOME) or out (EXPENSE)

Listing entries returns each one with the account's closing balance after
it, computed from the opening balance and every earlier entry on that
account, so filtering by date, type or category never changes a row's
closing balance.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LedgerTransaction, PaymentLedger, StartingBalance, User
from ..models.ledger import LEDGER_METHOD_BANK, LEDGER_METHOD_CASH, TXN_EXPENSE, TXN_INCOME
from invoicer.time_utils import parse_iso_datetime, utcnow


logger = logging.getLogger(__name__)

VALID_METHODS = (LEDGER_METHOD_CASH, LEDGER_METHOD_BANK)
VALID_TYPES = (TXN_INCOME, TXN_EXPENSE)


class LedgerError(Exception):
    """Raised for cash book validation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class LedgerNotFoundError(LedgerError):
    pass


class LedgerAccessError(LedgerError):
    pass


# =============================================================================
# PARSING
# =============================================================================

def _parse_text(value, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    if value is None:
        text = None
    elif not isinstance(value, str):
        raise LedgerError(f"{field} must be a string", details={"field": field})
    else:
        text = value.strip() or None
    if required and not text:
        raise LedgerError(f"{field} is required", details={"field": field})
    if text and max_length is not None and len(text) > max_length:
        raise LedgerError(f"{field} is too long", details={"field": field, "max_length": max_length})
    return text


def _parse_cents(value, field: str, *, allow_negative: bool = False, allow_zero: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise LedgerError(f"{field} must be an integer number of cents", details={"field": field})
    if value < 0 and not allow_negative:
        raise LedgerError(f"{field} cannot be negative", details={"field": field})
    if value == 0 and not allow_zero:
        raise LedgerError(f"{field} must be greater than zero", details={"field": field})
    return value


def _parse_choice(value, field: str, allowed: tuple[str, ...]) -> str:
    if not isinstance(value, str) or value.strip().upper() not in allowed:
        raise LedgerError(f"Invalid {field}: {value!r}", details={"field": field, "allowed": list(allowed)})
    return value.strip().upper()


def _parse_when(value, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise LedgerError(f"{field} must be an ISO-8601 datetime", details={"field": field})


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(owner_id: int) -> list[PaymentLedger]:
    return (
        db.session.query(PaymentLedger)
        .filter_by(owner_id=owner_id)
        .order_by(PaymentLedger.created_at.desc(), PaymentLedger.id.desc())
        .all()
    )


def create_category(owner_id: int, data: dict) -> PaymentLedger:
    category = _parse_text(data.get("category"), "category", required=True, max_length=128)
    ledger = PaymentLedger(owner_id=owner_id, category=category)
    db.session.add(ledger)
    db.session.commit()
    return ledger


def _get_editable_category(actor: User, ledger_id: int) -> PaymentLedger:
    ledger = db.session.get(PaymentLedger, ledger_id)
    if not ledger:
        raise LedgerNotFoundError("Payment ledger not found")
    if ledger.owner_id != actor.id and not actor.is_admin:
        raise LedgerAccessError("Not authorized")
    return ledger


def update_category(actor: User, ledger_id: int, data: dict) -> PaymentLedger:
    """Owner or ADMIN; a missing "category" key leaves the name unchanged."""
    ledger = _get_editable_category(actor, ledger_id)
    if "category" in data:
        ledger.category = _parse_text(data["category"], "category", required=True, max_length=128)
    db.session.commit()
    return ledger


def delete_category(actor: User, ledger_id: int) -> None:
    ledger = _get_editable_category(actor, ledger_id)
    db.session.delete(ledger)
    db.session.commit()


# =============================================================================
# STARTING BALANCES
# =============================================================================

def list_starting_balances(owner_id: int) -> list[StartingBalance]:
    return (
        db.session.query(StartingBalance)
        .filter_by(owner_id=owner_id)
        .order_by(StartingBalance.method.asc())
        .all()
    )


def _get_owned_balance(owner_id: int, balance_id: int) -> StartingBalance:
    balance = db.session.query(StartingBalance).filter_by(id=balance_id, owner_id=owner_id).first()
    if not balance:
        raise LedgerNotFoundError("Starting balance not found")
    return balance


def create_starting_balance(owner_id: int, data: dict) -> StartingBalance:
    """One per method; a second one for the same method is rejected."""
    method = _parse_choice(data.get("method"), "method", VALID_METHODS)
    amount_cents = _parse_cents(data.get("amount_cents"), "amount_cents", allow_negative=True)

    existing = db.session.query(StartingBalance).filter_by(owner_id=owner_id, method=method).first()
    if existing:
        raise LedgerError(
            f"Starting balance for {method} already exists. Use PUT to update.",
            details={"id": existing.id, "method": method},
        )

    balance = StartingBalance(owner_id=owner_id, method=method, amount_cents=amount_cents)
    db.session.add(balance)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise LedgerError(f"Starting balance for {method} already exists. Use PUT to update.", details={"method": method})
    return balance


def update_starting_balance(owner_id: int, balance_id: int, data: dict) -> StartingBalance:
    balance = _get_owned_balance(owner_id, balance_id)

    method = _parse_choice(data["method"], "method", VALID_METHODS) if "method" in data else balance.method
    amount_cents = (
        _parse_cents(data["amount_cents"], "amount_cents", allow_negative=True)
        if "amount_cents" in data
        else balance.amount_cents
    )

    conflict = (
        db.session.query(StartingBalance)
        .filter(
            StartingBalance.owner_id == owner_id,
            StartingBalance.method == method,
            StartingBalance.id != balance.id,
        )
        .first()
    )
    if conflict:
        raise LedgerError(f"Another starting balance for {method} already exists.", details={"id": conflict.id})

    balance.method = method
    balance.amount_cents = amount_cents
    db.session.commit()
    return balance


def delete_starting_balance(owner_id: int, balance_id: int) -> None:
    db.session.delete(_get_owned_balance(owner_id, balance_id))
    db.session.commit()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def create_transaction(owner_id: int, data: dict) -> LedgerTransaction:
    txn = LedgerTransaction(
        owner_id=owner_id,
        type=_parse_choice(data.get("type"), "type", VALID_TYPES),
        amount_cents=_parse_cents(data.get("amount_cents"), "amount_cents", allow_zero=False),
        method=_parse_choice(data.get("method") or LEDGER_METHOD_CASH, "method", VALID_METHODS),
        category=_parse_text(data.get("category"), "category", max_length=128),
        description=_parse_text(data.get("description"), "description"),
        reference=_parse_text(data.get("reference"), "reference", max_length=128),
        occurred_at=_parse_when(data.get("occurred_at"), "occurred_at") or utcnow(),
    )
    db.session.add(txn)
    db.session.commit()
    logger.info("Recorded %s of %s on %s for owner %s", txn.type, txn.amount_cents, txn.method, owner_id)
    return txn


def delete_transaction(owner_id: int, txn_id: int) -> None:
    txn = db.session.query(LedgerTransaction).filter_by(id=txn_id, owner_id=owner_id).first()
    if not txn:
        raise LedgerNotFoundError("Transaction not found")
    db.session.delete(txn)
    db.session.commit()


def _signed_amount():
    return case(
        (LedgerTransaction.type == TXN_INCOME, LedgerTransaction.amount_cents),
        else_=-LedgerTransaction.amount_cents,
    )


def _opening_balances(owner_id: int, before: datetime | None) -> dict[str, int]:
    """Starting balance plus every entry strictly before `before`, per method."""
    balances = {method: 0 for method in VALID_METHODS}
    for row in db.session.query(StartingBalance).filter_by(owner_id=owner_id):
        balances[row.method] = row.amount_cents

    if before is not None:
        rows = (
            db.session.query(
                LedgerTransaction.method,
                func.coalesce(func.sum(_signed_amount()), 0).label("net_cents"),
            )
            .filter(LedgerTransaction.owner_id == owner_id, LedgerTransaction.occurred_at < before)
            .group_by(LedgerTransaction.method)
            .all()
        )
        for row in rows:
            balances[row.method] = balances.get(row.method, 0) + int(row.net_cents)
    return balances


def list_transactions(
    owner_id: int,
    *,
    txn_type: str | None = None,
    category: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> dict:
    """
    Entries in date order, each with closing_balance_cents for its account.

    Returns {"transactions": [...], "balances": {"CASH": ..., "BANK": ...}}
    where balances are the closing balances at the end of the range.
    """
    start_dt = _parse_when(start, "start")
    end_dt = _parse_when(end, "end")
    if start_dt and end_dt and start_dt > end_dt:
        raise LedgerError("start must be before end")
    wanted_type = _parse_choice(txn_type, "type", VALID_TYPES) if txn_type else None

    running = _opening_balances(owner_id, start_dt)

    query = db.session.query(LedgerTransaction).filter(LedgerTransaction.owner_id == owner_id)
    if start_dt:
        query = query.filter(LedgerTransaction.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(LedgerTransaction.occurred_at <= end_dt)

    rows = []
    for txn in query.order_by(LedgerTransaction.occurred_at.asc(), LedgerTransaction.id.asc()):
        running[txn.method] = running.get(txn.method, 0) + txn.signed_amount_cents
        if wanted_type and txn.type != wanted_type:
            continue
        if category and txn.category != category:
            continue
        row = txn.to_dict()
        row["closing_balance_cents"] = running[txn.method]
        rows.append(row)

    return {"transactions": rows, "balances": running}
