# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user and g.owner_id; every tenant-scoped query in the
    route must filter by g.owner_id.

    Returns 401 if the Authorization header is missing, the token is
    unknown, expired or revoked, or the user was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.owner_id = user.id
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require the ADMIN role. Apply after @require_auth.

    Returns 401 without an authenticated user, 403 for non-admins.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401

        if not user.is_admin:
            return jsonify({"error": "Permission denied", "required_role": "ADMIN"}), 403

        return f(*args, **kwargs)

    return decorated_function
