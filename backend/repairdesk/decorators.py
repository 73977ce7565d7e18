# Overview: Request identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def _resolve_acting_user() -> User | None:
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or user.is_active is False:
        return None
    return user


def require_user(f):
    """
    Establish the acting user for the request.

    Sign-in happens upstream; the proxy in front of the API asserts the
    caller through the X-User-Id header. Sets g.current_user.

    Returns 401 if the header is missing, names no user, or names a
    deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not request.headers.get("X-User-Id"):
            return jsonify({"error": "Authentication required"}), 401

        user = _resolve_acting_user()
        if user is None:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require g.current_user to hold one of the given roles (403 otherwise)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Role '{user.role}' may not perform this action",
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
