# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.payment_service import PaymentError, PaymentNotFoundError
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@require_auth
def record_payment_route():
    """
    Record a payment against an invoice.

    Body: invoice_id, amount_cents, method, paid_at (ISO-8601), note
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice_id = data.get("invoice_id")
        amount_cents = data.get("amount_cents")

        if not invoice_id or amount_cents is None:
            return jsonify({"error": "invoice_id and amount_cents required"}), 400
        if isinstance(invoice_id, bool) or not isinstance(invoice_id, int):
            return jsonify({"error": "invoice_id must be an integer"}), 400

        payment, invoice = payment_service.record_payment(
            owner_id=g.owner_id,
            invoice_id=invoice_id,
            amount_cents=amount_cents,
            method=data.get("method"),
            paid_at=data.get("paid_at"),
            note=data.get("note"),
        )

        return jsonify({
            "payment": payment.to_dict(),
            "invoice": invoice.to_dict(),
        }), 201

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Failed to create payment"}), 500


@payments_bp.get("/")
@require_auth
def list_payments_route():
    try:
        invoice_id = request.args.get("invoice_id", type=int)
        payments = payment_service.list_payments(g.owner_id, invoice_id=invoice_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
