# Overview: Flask API routes for user and auth operations; parses input and returns JSON responses.

# backend/waterstation/routes/users.py
"""
User accounts and authentication.

- register/login/refresh-token are public
- profile, change-password, logout and the user list need a valid token
- block/unblock/hide and login history need an Administrator
"""

from flask import Blueprint, request, g, current_app

from ..services import auth_service, session_service
from ..decorators import require_auth, require_admin, bearer_token


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _client_info() -> dict:
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip_address": request.remote_addr,
    }


@users_bp.post("/register")
def register_route():
    payload = request.get_json(silent=True) or {}
    user = auth_service.register_user(payload)
    return {"message": "User registered successfully", "userId": user.id}, 201


@users_bp.post("/login")
def login_route():
    """
    Authenticate and issue an access token plus a refresh token.

    Token must be included in the Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username") or data.get("email")
    info = _client_info()

    user = auth_service.authenticate(username, data.get("password"), **info)
    tokens = session_service.create_token_pair(user.id, **info)
    current_app.logger.info("User %s logged in", user.id)

    return {
        "message": "Login successful",
        "token": tokens["token"],
        "refreshToken": tokens["refreshToken"],
        "user": user.to_dict(),
    }


@users_bp.post("/refresh-token")
def refresh_token_route():
    data = request.get_json(silent=True) or {}
    token = session_service.refresh(data.get("refreshToken"), **_client_info())
    return {"token": token}


@users_bp.post("/logout")
@require_auth
def logout_route():
    data = request.get_json(silent=True) or {}
    session_service.revoke_session(bearer_token(), reason="User logout")
    if data.get("refreshToken"):
        session_service.revoke_session(data["refreshToken"], reason="User logout")
    return {"message": "Logout successful"}


@users_bp.get("/profile")
@require_auth
def get_profile_route():
    return g.current_user.to_dict()


@users_bp.put("/profile")
@require_auth
def update_profile_route():
    payload = request.get_json(silent=True) or {}
    user = auth_service.update_profile(g.current_user.id, payload)
    return user.to_dict()


@users_bp.put("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    auth_service.change_password(
        g.current_user.id,
        data.get("currentPassword"),
        data.get("newPassword"),
    )
    return {"message": "Password changed successfully"}


@users_bp.get("/all")
@require_auth
def list_users_route():
    """
    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all users.
    - per_page: int (optional) - users per page (default 20, max 100)
    """
    return auth_service.list_users(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@users_bp.get("/login-history")
@require_auth
def my_login_history_route():
    """The caller's own login attempts, newest first."""
    rows = auth_service.get_login_history(g.current_user.id, limit=request.args.get("limit", 100, type=int))
    return [r.to_dict() for r in rows]


@users_bp.get("/<int:user_id>/login-history")
@require_auth
@require_admin
def login_history_route(user_id: int):
    rows = auth_service.get_login_history(user_id, limit=request.args.get("limit", 100, type=int))
    return {"items": [r.to_dict() for r in rows], "count": len(rows)}


@users_bp.put("/<int:user_id>/block")
@require_auth
@require_admin
def block_user_route(user_id: int):
    user = auth_service.set_blocked(user_id, True, acting_user_id=g.current_user.id)
    return {"message": "User blocked successfully", "user": user.to_dict()}


@users_bp.put("/<int:user_id>/unblock")
@require_auth
@require_admin
def unblock_user_route(user_id: int):
    user = auth_service.set_blocked(user_id, False, acting_user_id=g.current_user.id)
    return {"message": "User unblocked successfully", "user": user.to_dict()}


@users_bp.put("/<int:user_id>/hide")
@require_auth
@require_admin
def hide_user_route(user_id: int):
    auth_service.hide_user(user_id, acting_user_id=g.current_user.id)
    return {"message": "User hidden successfully"}
