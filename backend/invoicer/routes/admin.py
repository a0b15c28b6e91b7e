# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/invoicer/routes/admin.py
"""
Admin routes for user management.

Provides endpoints for:
- Registering users with an admin-issued (temporary) password
- Listing and updating users
- Setting a user's password and clearing the change-on-login flag
- Deactivating, reactivating and deleting users

All endpoints require an authenticated ADMIN.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import (
    CompanySettings,
    Customer,
    Invoice,
    LedgerTransaction,
    Payment,
    PaymentLedger,
    QuotationCategory,
    SequenceCounter,
    SessionToken,
    StartingBalance,
    User,
)
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError, VALID_ROLES
from ..decorators import require_auth, require_admin

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

# Tables whose rows keep a user from being hard-deleted
OWNED_MODELS = (
    Invoice,
    Customer,
    Payment,
    PaymentLedger,
    StartingBalance,
    LedgerTransaction,
    QuotationCategory,
    CompanySettings,
    SequenceCounter,
)


def _get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def _optional_str(data: dict, *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        return value.strip() or None
    return None


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.post("/register-user")
@require_auth
@require_admin
def register_user():
    """
    Create a user who must change their password on first login.

    Request body:
    - email: str (required)
    - username: str (optional, defaults to email)
    - name / full_name: str (optional)
    - role: USER | ADMIN (optional, default USER)
    - password: str (optional) - generated and returned when omitted
    """
    try:
        data = request.get_json(silent=True) or {}
        email = _optional_str(data, "email")
        if not email:
            return jsonify({"error": "email required"}), 400

        username = _optional_str(data, "username") or email
        name = _optional_str(data, "name", "full_name")
        role = (_optional_str(data, "role") or "USER").upper()
        password = _optional_str(data, "password")
        generated = password is None
        if generated:
            password = auth_service.generate_temporary_password()

        user = auth_service.create_user(
            username,
            email,
            password,
            name=name,
            role=role,
            must_change_password=True,
        )
        current_app.logger.info("Admin %s registered user %s", g.current_user.username, user.username)

        body = {"user": user.to_dict(), "message": "User registered"}
        if generated:
            body["temp_password"] = password
        return jsonify(body), 201

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    """
    List users.

    Query params:
    - include_inactive: bool (default false) - include deactivated users
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)

    users = query.order_by(User.username).all()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    """Update a user's role and/or display name."""
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    try:
        data = request.get_json(silent=True) or {}
        if "role" in data:
            role = data["role"].upper() if isinstance(data["role"], str) else data["role"]
            if role not in VALID_ROLES:
                return jsonify({"error": f"Invalid role: {data['role']}", "allowed": list(VALID_ROLES)}), 400
            if user.id == g.current_user.id and role != user.role:
                return jsonify({"error": "Cannot change your own role"}), 400
            user.role = role
        if "name" in data or "full_name" in data:
            user.name = _optional_str(data, "name", "full_name")

        db.session.commit()
        return jsonify({"user": user.to_dict()}), 200

    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/password")
@require_auth
@require_admin
def set_user_password(user_id: int):
    """
    Set a user's password.

    Request body:
    - password: str (required)
    - force_change: bool (optional) - user must change it on next login

    Every session of the user is revoked.
    """
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    data = request.get_json(silent=True) or {}
    password = data.get("password")
    if not isinstance(password, str) or not password.strip():
        return jsonify({"error": "password required"}), 400

    try:
        auth_service.set_password(user, password, force_change=bool(data.get("force_change")))
        db.session.commit()
        revoked = session_service.revoke_all_user_sessions(user.id, reason="Password reset by admin")
        return jsonify({
            "message": "Password updated",
            "user": user.to_dict(),
            "sessions_revoked": revoked,
        }), 200

    except PasswordValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set user password")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/users/<int:user_id>/password")
@require_auth
@require_admin
def clear_password_change_flag(user_id: int):
    """Stop forcing the user to change their password."""
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    user.must_change_password = False
    db.session.commit()
    return jsonify({"message": "Password change requirement cleared", "user": user.to_dict()}), 200


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_admin
def deactivate_user(user_id: int):
    """
    Deactivate a user account.

    Sets is_active=False and revokes every session, so the user is logged
    out at once and cannot log back in.
    """
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    if not user.is_active:
        return jsonify({"error": "User is already deactivated"}), 400

    # Prevent self-deactivation
    if user.id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    user.is_active = False
    revoked_count = session_service.revoke_all_user_sessions(
        user_id=user.id,
        reason="Account deactivated by admin"
    )
    db.session.commit()

    return jsonify({
        "message": "User deactivated",
        "user": user.to_dict(),
        "sessions_revoked": revoked_count,
    }), 200


@admin_bp.post("/users/<int:user_id>/reactivate")
@require_auth
@require_admin
def reactivate_user(user_id: int):
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    if user.is_active:
        return jsonify({"error": "User is already active"}), 400

    user.is_active = True
    db.session.commit()
    return jsonify({"message": "User reactivated", "user": user.to_dict()}), 200


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_admin
def delete_user(user_id: int):
    """
    Permanently delete a user without business data.

    Users that own documents, customers, cash book rows or counters are
    refused with 400; deactivate them instead so their numbers stay taken.
    """
    user = _get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    if user.id == g.current_user.id:
        return jsonify({"error": "Cannot delete your own account"}), 400

    owned = {
        model.__tablename__: count
        for model in OWNED_MODELS
        if (count := db.session.query(model).filter_by(owner_id=user.id).count())
    }
    if owned:
        return jsonify({
            "error": "User owns data and cannot be deleted; deactivate instead",
            "details": owned,
        }), 400

    try:
        db.session.query(SessionToken).filter_by(user_id=user.id).delete()
        db.session.delete(user)
        db.session.commit()
        return jsonify({"message": "User deleted"}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
