# Overview: Service-layer operations for company settings; letterhead and tax defaults per owner.

from __future__ import annotations

import re

from ..extensions import db
from ..models import CompanySettings


TEXT_FIELDS = {
    "name": 255,
    "address": None,
    "contact": 255,
    "gst_number": 16,
    "pan_number": 16,
    "currency": 8,
    "tax_type": 16,
    "state_name": 64,
    "state_code": 8,
}

MAX_TAX_RATE_BPS = 10000

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


def get_company_settings(owner_id: int) -> CompanySettings | None:
    return db.session.query(CompanySettings).filter_by(owner_id=owner_id).first()


def _clean_text(field: str, value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise SettingsValidationError(f"{field} must be a string")
    value = value.strip() or None
    max_length = TEXT_FIELDS[field]
    if value and max_length is not None and len(value) > max_length:
        raise SettingsValidationError(f"{field} must be at most {max_length} characters")
    return value


def _validate(data: dict) -> dict:
    changes = {}
    for field in TEXT_FIELDS:
        if field in data:
            changes[field] = _clean_text(field, data[field])

    if changes.get("currency"):
        changes["currency"] = changes["currency"].upper()
        if not CURRENCY_RE.match(changes["currency"]):
            raise SettingsValidationError("currency must be a 3-letter ISO code")
    if changes.get("tax_type"):
        changes["tax_type"] = changes["tax_type"].upper()

    if "tax_rate_bps" in data:
        rate = data["tax_rate_bps"]
        if rate is not None and (
            isinstance(rate, bool) or not isinstance(rate, int) or not 0 <= rate <= MAX_TAX_RATE_BPS
        ):
            raise SettingsValidationError(f"tax_rate_bps must be an integer between 0 and {MAX_TAX_RATE_BPS}")
        changes["tax_rate_bps"] = rate
    return changes


def upsert_company_settings(owner_id: int, data: dict) -> CompanySettings:
    """
    Create the owner's settings row on first save, update it afterwards.

    Only keys present in data are written; an explicit null clears a field.
    """
    if not isinstance(data, dict):
        raise SettingsValidationError("Settings payload must be an object")
    changes = _validate(data)

    settings = get_company_settings(owner_id)
    if settings is None:
        settings = CompanySettings(owner_id=owner_id)
        db.session.add(settings)

    for field, value in changes.items():
        setattr(settings, field, value)
    db.session.commit()
    return settings
