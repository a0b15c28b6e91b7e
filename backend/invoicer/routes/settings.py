from __future__ import annotations

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth
from ..services import settings_service
from ..services.settings_service import SettingsValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


def _json_error(exc: Exception):
    if isinstance(exc, SettingsValidationError):
        return jsonify({"error": str(exc)}), 400
    current_app.logger.exception("Settings request failed")
    return jsonify({"error": "Internal server error"}), 500


@settings_bp.get("/")
@require_auth
def get_settings():
    settings = settings_service.get_company_settings(g.owner_id)
    return jsonify({"settings": settings.to_dict() if settings else None}), 200


@settings_bp.route("/", methods=["POST", "PUT"])
@require_auth
def save_settings():
    """Create or partially update the caller's company settings."""
    try:
        settings = settings_service.upsert_company_settings(g.owner_id, request.get_json(silent=True) or {})
        return jsonify({"settings": settings.to_dict()}), 200
    except Exception as exc:
        return _json_error(exc)
