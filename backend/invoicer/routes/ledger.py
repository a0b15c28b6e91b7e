# Overview: Flask API routes for the cash book; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import ledger_service
from ..services.ledger_service import LedgerError, LedgerNotFoundError, LedgerAccessError
from ..decorators import require_auth


payment_ledgers_bp = Blueprint("payment_ledgers", __name__, url_prefix="/api/payment-ledgers")
transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _error_response(e: LedgerError):
    if isinstance(e, LedgerNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, LedgerAccessError):
        return jsonify({"error": str(e)}), 403
    return jsonify({"error": str(e), "details": e.details}), 400


# =============================================================================
# CATEGORIES
# =============================================================================

@payment_ledgers_bp.get("/")
@require_auth
def list_payment_ledgers_route():
    try:
        ledgers = ledger_service.list_categories(g.owner_id)
        return jsonify({"payment_ledgers": [ledger.to_dict() for ledger in ledgers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list payment ledgers")
        return jsonify({"error": "Internal server error"}), 500


@payment_ledgers_bp.post("/")
@require_auth
def create_payment_ledger_route():
    try:
        ledger = ledger_service.create_category(g.owner_id, request.get_json(silent=True) or {})
        return jsonify({"payment_ledger": ledger.to_dict()}), 201
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create payment ledger")
        return jsonify({"error": "Internal server error"}), 500


@payment_ledgers_bp.put("/<int:ledger_id>")
@require_auth
def update_payment_ledger_route(ledger_id: int):
    """Owner or ADMIN only."""
    try:
        ledger = ledger_service.update_category(g.current_user, ledger_id, request.get_json(silent=True) or {})
        return jsonify({"payment_ledger": ledger.to_dict()}), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment ledger")
        return jsonify({"error": "Internal server error"}), 500


@payment_ledgers_bp.delete("/<int:ledger_id>")
@require_auth
def delete_payment_ledger_route(ledger_id: int):
    try:
        ledger_service.delete_category(g.current_user, ledger_id)
        return jsonify({"message": "Deleted"}), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete payment ledger")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STARTING BALANCES
# =============================================================================

@transactions_bp.get("/balance")
@require_auth
def list_balances_route():
    try:
        balances = ledger_service.list_starting_balances(g.owner_id)
        return jsonify({"balances": [b.to_dict() for b in balances]}), 200
    except Exception:
        current_app.logger.exception("Failed to list starting balances")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/balance")
@require_auth
def create_balance_route():
    try:
        balance = ledger_service.create_starting_balance(g.owner_id, request.get_json(silent=True) or {})
        return jsonify({"balance": balance.to_dict()}), 201
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create starting balance")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.put("/balance/<int:balance_id>")
@require_auth
def update_balance_route(balance_id: int):
    try:
        balance = ledger_service.update_starting_balance(
            g.owner_id, balance_id, request.get_json(silent=True) or {}
        )
        return jsonify({"balance": balance.to_dict()}), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update starting balance")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/balance/<int:balance_id>")
@require_auth
def delete_balance_route(balance_id: int):
    try:
        ledger_service.delete_starting_balance(g.owner_id, balance_id)
        return jsonify({"message": "Deleted"}), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete starting balance")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSACTIONS
# =============================================================================

@transactions_bp.get("/")
@require_auth
def list_transactions_route():
    """
    Query params:
    - type: INCOME | EXPENSE
    - category: exact category name
    - start, end: ISO-8601 datetimes (inclusive)
    """
    try:
        result = ledger_service.list_transactions(
            g.owner_id,
            txn_type=request.args.get("type"),
            category=request.args.get("category"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/")
@require_auth
def create_transaction_route():
    try:
        txn = ledger_service.create_transaction(g.owner_id, request.get_json(silent=True) or {})
        return jsonify({"transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<int:txn_id>")
@require_auth
def delete_transaction_route(txn_id: int):
    try:
        ledger_service.delete_transaction(g.owner_id, txn_id)
        return jsonify({"message": "Deleted"}), 200
    except LedgerError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500
