# Overview: Flask API routes for quotation categories; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import category_service
from ..services.category_service import CategoryError, CategoryNotFoundError, CategoryAccessError
from ..decorators import require_auth


quotation_categories_bp = Blueprint("quotation_categories", __name__, url_prefix="/api/quotation-categories")


def _error_response(e: CategoryError):
    if isinstance(e, CategoryNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, CategoryAccessError):
        return jsonify({"error": str(e)}), 403
    return jsonify({"error": str(e), "details": e.details}), 400


@quotation_categories_bp.get("/")
@require_auth
def list_categories_route():
    try:
        categories = category_service.list_categories(g.owner_id)
        return jsonify({"categories": [c.to_dict() for c in categories]}), 200
    except Exception:
        current_app.logger.exception("Failed to list quotation categories")
        return jsonify({"error": "Internal server error"}), 500


@quotation_categories_bp.post("/")
@require_auth
def create_category_route():
    try:
        category = category_service.create_category(g.owner_id, request.get_json(silent=True) or {})
        return jsonify({"category": category.to_dict()}), 201
    except CategoryError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create quotation category")
        return jsonify({"error": "Internal server error"}), 500


@quotation_categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    """Owner or ADMIN only."""
    try:
        category = category_service.update_category(g.current_user, category_id, request.get_json(silent=True) or {})
        return jsonify({"category": category.to_dict()}), 200
    except CategoryError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update quotation category")
        return jsonify({"error": "Internal server error"}), 500


@quotation_categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    try:
        category_service.delete_category(g.current_user, category_id)
        return jsonify({"message": "Deleted"}), 200
    except CategoryError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete quotation category")
        return jsonify({"error": "Internal server error"}), 500
