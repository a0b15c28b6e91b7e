# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Invoice, Payment
from ..models.documents import DOC_TYPE_INVOICE, DOC_TYPE_QUOTE
from invoicer.time_utils import aware_utcnow, parse_iso_datetime, resolve_timezone, to_utc_z


PRESET_TODAY = "today"
PRESET_WEEK = "week"
PRESET_MONTH = "month"
VALID_PRESETS = (PRESET_TODAY, PRESET_WEEK, PRESET_MONTH)

DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _report_tz():
    return resolve_timezone(current_app.config.get("NUMBERING_TIMEZONE", "UTC"))


def _local_day_start(day: date, tz) -> datetime:
    """Midnight of `day` in tz, as UTC-naive."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)


def _parse_bound(value: str, tz, *, end_of_day: bool) -> datetime:
    if not isinstance(value, str):
        raise ReportError("Date bounds must be ISO-8601 strings")
    value = value.strip()
    if DATE_ONLY_RE.match(value):
        try:
            day = date.fromisoformat(value)
        except ValueError:
            raise ReportError(f"Invalid date: {value}")
        if end_of_day:
            return _local_day_start(day + timedelta(days=1), tz) - timedelta(microseconds=1)
        return _local_day_start(day, tz)
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ReportError(f"Invalid datetime: {value}")


def resolve_range(
    start: str | None,
    end: str | None,
    preset: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """
    Inclusive UTC-naive bounds for a report.

    Explicit start/end win. A date-only end covers that whole day. Without
    them, preset selects today, this week (from Sunday) or this month, up to
    the end of today; days are calendar days in the numbering timezone.
    No bounds and no preset means all time.
    """
    tz = _report_tz()
    if start or end:
        start_dt = _parse_bound(start, tz, end_of_day=False) if start else None
        end_dt = _parse_bound(end, tz, end_of_day=True) if end else None
        if start_dt and end_dt and start_dt > end_dt:
            raise ReportError("start must be before end")
        return start_dt, end_dt

    if not preset:
        return None, None
    if preset not in VALID_PRESETS:
        raise ReportError(f"filter must be one of {', '.join(VALID_PRESETS)}")

    today = (now or aware_utcnow()).astimezone(tz).date()
    end_dt = _local_day_start(today + timedelta(days=1), tz) - timedelta(microseconds=1)
    if preset == PRESET_TODAY:
        first = today
    elif preset == PRESET_WEEK:
        # isoweekday: Monday=1 .. Sunday=7
        first = today - timedelta(days=today.isoweekday() % 7)
    else:
        first = today.replace(day=1)
    return _local_day_start(first, tz), end_dt


def _apply_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def _envelope(start_dt, end_dt, rows: list[dict], summary: dict) -> dict:
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "rows": rows,
        "summary": summary,
    }


def invoice_report(
    owner_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    preset: str | None = None,
    doc_type: str | None = None,
    now: datetime | None = None,
) -> dict:
    start_dt, end_dt = resolve_range(start, end, preset, now=now)
    if doc_type:
        doc_type = doc_type.upper()
        if doc_type not in (DOC_TYPE_INVOICE, DOC_TYPE_QUOTE):
            raise ReportError("type must be INVOICE or QUOTE")

    def scoped(query):
        query = query.filter(Invoice.owner_id == owner_id)
        if doc_type:
            query = query.filter(Invoice.doc_type == doc_type)
        return _apply_range(query, Invoice.created_at, start_dt, end_dt)

    invoices = scoped(db.session.query(Invoice)).order_by(Invoice.created_at.asc(), Invoice.id.asc()).all()

    status_rows = scoped(
        db.session.query(
            Invoice.status,
            func.count(Invoice.id).label("count"),
            func.coalesce(func.sum(Invoice.grand_total_cents), 0).label("total_cents"),
            func.coalesce(func.sum(Invoice.advance_paid_cents), 0).label("paid_cents"),
        )
    ).group_by(Invoice.status).all()

    total_cents = sum(int(row.total_cents) for row in status_rows)
    paid_cents = sum(int(row.paid_cents) for row in status_rows)
    summary = {
        "count": sum(row.count for row in status_rows),
        "by_status": {row.status: row.count for row in status_rows},
        "total_cents": total_cents,
        "paid_cents": paid_cents,
        "outstanding_cents": total_cents - paid_cents,
    }
    rows = [
        {
            "id": inv.id,
            "document_number": inv.document_number,
            "type": inv.doc_type,
            "status": inv.status,
            "customer_id": inv.customer_id,
            "created_at": to_utc_z(inv.created_at),
            "grand_total_cents": inv.grand_total_cents,
            "advance_paid_cents": inv.advance_paid_cents,
        }
        for inv in invoices
    ]
    return _envelope(start_dt, end_dt, rows, summary)


def payment_report(
    owner_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    preset: str | None = None,
    now: datetime | None = None,
) -> dict:
    start_dt, end_dt = resolve_range(start, end, preset, now=now)

    def scoped(query):
        return _apply_range(query.filter(Payment.owner_id == owner_id), Payment.paid_at, start_dt, end_dt)

    payments = scoped(db.session.query(Payment)).order_by(Payment.paid_at.asc(), Payment.id.asc()).all()

    method_rows = scoped(
        db.session.query(
            Payment.method,
            func.count(Payment.id).label("count"),
            func.coalesce(func.sum(Payment.amount_cents), 0).label("amount_cents"),
        )
    ).group_by(Payment.method).all()

    summary = {
        "count": sum(row.count for row in method_rows),
        "total_cents": sum(int(row.amount_cents) for row in method_rows),
        "by_method": {row.method: int(row.amount_cents) for row in method_rows},
    }
    rows = [
        {
            "id": p.id,
            "invoice_id": p.invoice_id,
            "method": p.method,
            "amount_cents": p.amount_cents,
            "paid_at": to_utc_z(p.paid_at),
        }
        for p in payments
    ]
    return _envelope(start_dt, end_dt, rows, summary)


def customer_report(
    owner_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    preset: str | None = None,
    now: datetime | None = None,
) -> dict:
    start_dt, end_dt = resolve_range(start, end, preset, now=now)

    def scoped(query):
        return _apply_range(query.filter(Customer.owner_id == owner_id), Customer.created_at, start_dt, end_dt)

    customers = scoped(db.session.query(Customer)).order_by(Customer.created_at.asc(), Customer.id.asc()).all()

    status_rows = scoped(
        db.session.query(Customer.status, func.count(Customer.id).label("count"))
    ).group_by(Customer.status).all()

    summary = {
        "count": sum(row.count for row in status_rows),
        "by_status": {row.status: row.count for row in status_rows},
    }
    rows = [
        {
            "id": c.id,
            "name": c.name,
            "status": c.status,
            "created_at": to_utc_z(c.created_at),
        }
        for c in customers
    ]
    return _envelope(start_dt, end_dt, rows, summary)
