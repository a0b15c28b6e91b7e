from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> dict:
    # "from"/"to" and the "filter" preset are the names the web client sends
    return {
        "start": request.args.get("start") or request.args.get("from"),
        "end": request.args.get("end") or request.args.get("to"),
        "preset": request.args.get("filter"),
    }


@reports_bp.get("/invoices")
@require_auth
def invoices_report():
    try:
        report = reporting_service.invoice_report(
            g.owner_id,
            doc_type=request.args.get("type"),
            **_range_args(),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to build invoice report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/payments")
@require_auth
def payments_report():
    try:
        report = reporting_service.payment_report(g.owner_id, **_range_args())
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to build payment report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/customers")
@require_auth
def customers_report():
    try:
        report = reporting_service.customer_report(g.owner_id, **_range_args())
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to build customer report")
        return jsonify({"error": "Internal server error"}), 500
