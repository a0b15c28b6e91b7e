# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import customer_service
from ..services.customer_service import CustomerError, CustomerNotFoundError, CustomerAccessError
from ..decorators import require_auth


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _error_response(e: CustomerError):
    if isinstance(e, CustomerNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, CustomerAccessError):
        return jsonify({"error": str(e)}), 403
    return jsonify({"error": str(e), "details": e.details}), 400


@customers_bp.get("/")
@require_auth
def list_customers_route():
    try:
        customers = customer_service.list_customers(g.owner_id)
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/")
@require_auth
def create_customer_route():
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.create_customer(g.owner_id, data)
        return jsonify({"customer": customer.to_dict()}), 201
    except CustomerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    """Owner or ADMIN only."""
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.update_customer(g.current_user, customer_id, data)
        return jsonify({"customer": customer.to_dict()}), 200
    except CustomerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(g.current_user, customer_id)
        return jsonify({"message": "Deleted"}), 200
    except CustomerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
