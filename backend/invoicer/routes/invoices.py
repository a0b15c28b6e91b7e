# Overview: Flask API routes for invoice and quotation operations; parses input and returns JSON responses.

# backend/invoicer/routes/invoices.py
"""
Invoice API routes

POST   /api/invoices/               -> create invoice or quotation
GET    /api/invoices/               -> list own documents (?status=, ?type=)
GET    /api/invoices/<id>           -> view own document
PUT    /api/invoices/<id>           -> edit document, replace items
DELETE /api/invoices/<id>           -> delete document with items and payments
POST   /api/invoices/<id>/convert   -> quotation -> invoice (new INV number)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service
from ..services.invoice_service import InvoiceError, InvoiceNotFoundError
from ..services.numbering_service import AllocationExhaustedError, NumberingError
from ..decorators import require_auth


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _error_response(e: Exception):
    if isinstance(e, InvoiceNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, AllocationExhaustedError):
        return jsonify({"error": str(e), "retryable": True}), 503
    return jsonify({"error": str(e), "details": e.details}), 400


@invoices_bp.post("/")
@require_auth
def create_invoice_route():
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.create_document(g.owner_id, data)
        return jsonify({"invoice": invoice.to_dict()}), 201
    except (InvoiceError, NumberingError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/")
@require_auth
def list_invoices_route():
    try:
        invoices = invoice_service.list_documents(
            g.owner_id,
            status=request.args.get("status"),
            doc_type=request.args.get("type"),
        )
        return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200
    except InvoiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_document(g.owner_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except InvoiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>")
@require_auth
def update_invoice_route(invoice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_document(g.owner_id, invoice_id, data)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except InvoiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_document(g.owner_id, invoice_id)
        return jsonify({"success": True}), 200
    except InvoiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Failed to delete invoice"}), 500


@invoices_bp.post("/<int:invoice_id>/convert")
@require_auth
def convert_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.convert_quotation(g.owner_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except (InvoiceError, NumberingError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert quotation")
        return jsonify({"error": "Internal server error"}), 500
