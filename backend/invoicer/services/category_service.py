# Overview: Service-layer operations for quotation categories; reusable line templates per owner.

from __future__ import annotations

from ..extensions import db
from ..models import QuotationCategory, User


EDITABLE_FIELDS = ("category", "description", "hsn", "price_cents")


class CategoryError(Exception):
    """Raised for quotation category errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CategoryNotFoundError(CategoryError):
    pass


class CategoryAccessError(CategoryError):
    pass


def _parse_field(field: str, value):
    if field == "price_cents":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CategoryError("price_cents must be a non-negative integer", details={"field": field})
        return value

    if value is None:
        return None
    if not isinstance(value, str):
        raise CategoryError(f"{field} must be a string", details={"field": field})
    value = value.strip() or None
    if field == "category" and not value:
        raise CategoryError("Category is required", details={"field": field})
    if field == "hsn" and value and len(value) > 16:
        raise CategoryError("hsn is too long", details={"field": field, "max_length": 16})
    if field == "category" and len(value) > 128:
        raise CategoryError("category is too long", details={"field": field, "max_length": 128})
    return value


def list_categories(owner_id: int) -> list[QuotationCategory]:
    return (
        db.session.query(QuotationCategory)
        .filter_by(owner_id=owner_id)
        .order_by(QuotationCategory.created_at.desc(), QuotationCategory.id.desc())
        .all()
    )


def create_category(owner_id: int, data: dict) -> QuotationCategory:
    if data.get("category") is None:
        raise CategoryError("Category is required", details={"field": "category"})
    values = {field: _parse_field(field, data.get(field)) for field in EDITABLE_FIELDS}

    category = QuotationCategory(owner_id=owner_id, **values)
    db.session.add(category)
    db.session.commit()
    return category


def _get_editable_category(actor: User, category_id: int) -> QuotationCategory:
    category = db.session.get(QuotationCategory, category_id)
    if not category:
        raise CategoryNotFoundError("Quotation category not found")
    if category.owner_id != actor.id and not actor.is_admin:
        raise CategoryAccessError("Not authorized")
    return category


def update_category(actor: User, category_id: int, data: dict) -> QuotationCategory:
    """Partial update; explicit null clears description, hsn or price_cents."""
    category = _get_editable_category(actor, category_id)

    if "category" in data and data["category"] is None:
        raise CategoryError("Category is required", details={"field": "category"})
    changes = {field: _parse_field(field, data[field]) for field in EDITABLE_FIELDS if field in data}

    for field, value in changes.items():
        setattr(category, field, value)
    db.session.commit()
    return category


def delete_category(actor: User, category_id: int) -> None:
    category = _get_editable_category(actor, category_id)
    db.session.delete(category)
    db.session.commit()
