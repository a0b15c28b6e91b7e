# Overview: Flask API routes for self-service account operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the current user's password.

    Request body:
    - old_password: str (not needed while an admin-issued password is active)
    - new_password: str (required)

    Other sessions of the user are revoked; the current one stays valid.
    """
    data = request.get_json(silent=True) or {}
    old_password = data.get("old_password")
    new_password = data.get("new_password")

    if not isinstance(new_password, str) or not new_password:
        return jsonify({"error": "new_password required"}), 400
    if old_password is not None and not isinstance(old_password, str):
        return jsonify({"error": "old_password must be a string"}), 400

    try:
        auth_service.change_password(g.current_user, old_password, new_password)
        session_service.revoke_all_user_sessions(
            g.current_user.id,
            reason="Password changed",
            keep_token=g.session_token,
        )
        return jsonify({"message": "Password changed", "user": g.current_user.to_dict()}), 200

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500
