# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_token: The SessionToken record behind the request

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired, idle-timed-out or belongs to a blocked/hidden user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return jsonify({"message": "Access token required"}), 401

        result = session_service.validate_session(token)
        if not result.ok:
            return jsonify({"message": "Invalid or expired token"}), 401

        g.current_user = result.user
        g.session_token = result.token
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an Administrator. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return jsonify({"message": "Access token required"}), 401
        if not g.current_user.is_admin:
            return jsonify({"message": "Administrator access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user is not None else None
