# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every stock movement and sale is attributed to a user, so accounts are
never hard-deleted: they are blocked or hidden instead.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS)
- Minimum 6 characters, must not contain the user's own name/email
- Blocked or hidden accounts cannot log in
- Every login attempt, successful or not, is written to login_history
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app, has_app_context
from sqlalchemy import or_

from ..models import LoginHistory, User
from ..models.auth import ROLE_ADMIN, ROLE_USER
from ..errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..validation import ModelValidationPolicy, validate_payload
from waterstation.time_utils import utcnow
from .concurrency import get_session, transaction
from . import session_service

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^09\d{9}$")

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={"username", "email", "first_name", "last_name", "phone", "address"},
    required_on_create={"username", "email"},
    aliases={"firstName": "first_name", "lastName": "last_name"},
)


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def validate_password(password, *, personal: list[str | None] = ()) -> None:
    """
    Raise ValidationError if password is unacceptable.

    personal: username/email/names the password must not contain.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    lowered = password.lower()
    for info in personal:
        if info and info.lower() in lowered:
            raise ValidationError("Password should not contain personal information")


def _check_contact(patch: dict) -> None:
    email = patch.get("email")
    if email is not None and not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    phone = patch.get("phone")
    if phone and not PHONE_RE.match(phone):
        raise ValidationError("Phone number must be in Philippine format (09XXXXXXXXX)")


def hash_password(password: str) -> str:
    """bcrypt hash, returned as str for storage."""
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Timing-safe comparison via bcrypt.checkpw().

    A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _ensure_unique(session, username: str | None, email: str | None, *, exclude_id: int | None = None) -> None:
    conds = []
    if username:
        conds.append(User.username == username)
    if email:
        conds.append(User.email == email)
    if not conds:
        return
    q = session.query(User.id).filter(or_(*conds))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Username or email already exists")


def register_user(payload: dict, *, role: str = ROLE_USER, session=None) -> User:
    """
    Create an account.

    Public registration always creates ROLE_USER accounts; administrators
    are seeded from the CLI.
    """
    session = get_session(session)
    payload = payload if isinstance(payload, dict) else {}
    password = payload.get("password")
    if not payload.get("username") or not payload.get("email") or not password:
        raise ValidationError("Please provide username, email, and password")

    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=False)
    _check_contact(patch)
    validate_password(password)

    with transaction(session):
        _ensure_unique(session, patch["username"], patch["email"])
        user = User(**patch, role=role, password_hash=hash_password(password))
        session.add(user)

    logger.info("User registered id=%s username=%r role=%s", user.id, user.username, user.role)
    return user


def _record_attempt(session, *, user: User | None, username: str, success: bool,
                    ip_address: str | None, user_agent: str | None) -> None:
    session.add(LoginHistory(
        user_id=user.id if user else None,
        username=user.username if user else username,
        role=user.role if user else None,
        ip_address=ip_address,
        user_agent=user_agent,
        success=success,
        login_time=utcnow(),
    ))


def authenticate(
    username: str,
    password: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session=None,
) -> User:
    """
    Check credentials and update login counters.

    Accepts a username or an email. Raises AuthenticationError for bad
    credentials and PermissionDeniedError for blocked/hidden accounts.
    The attempt is recorded in login_history either way.
    """
    session = get_session(session)
    if not username or not password:
        raise ValidationError("Please provide username and password")

    user = (
        session.query(User)
        .filter(or_(User.username == username, User.email == username))
        .first()
    )

    if user is None:
        with transaction(session):
            _record_attempt(session, user=None, username=username, success=False,
                            ip_address=ip_address, user_agent=user_agent)
        logger.info("Login failed for unknown user %r", username)
        raise AuthenticationError("Invalid credentials")

    if user.is_blocked:
        raise PermissionDeniedError("Your account has been blocked. Please contact administrator.")
    if user.is_hidden:
        raise PermissionDeniedError("Account not found")

    ok = verify_password(password, user.password_hash)
    with transaction(session):
        user.total_login_attempts = (user.total_login_attempts or 0) + 1
        if ok:
            user.login_count = (user.login_count or 0) + 1
            user.last_login_at = utcnow()
        _record_attempt(session, user=user, username=username, success=ok,
                        ip_address=ip_address, user_agent=user_agent)

    if not ok:
        logger.info("Login failed for user id=%s", user.id)
        raise AuthenticationError("Invalid credentials")
    return user


def get_user(user_id: int, *, session=None) -> User:
    session = get_session(session)
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"userId": user_id})
    return user


def update_profile(user_id: int, payload: dict, *, session=None) -> User:
    session = get_session(session)
    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)
    _check_contact(patch)

    with transaction(session):
        user = get_user(user_id, session=session)
        _ensure_unique(session, patch.get("username"), patch.get("email"), exclude_id=user.id)
        for k, v in patch.items():
            setattr(user, k, v)
    return user


def change_password(user_id: int, current_password: str, new_password: str, *, session=None) -> int:
    """
    Replace a user's password.

    All of the user's sessions are revoked afterwards; returns how many.
    """
    session = get_session(session)
    if not current_password or not new_password:
        raise ValidationError("currentPassword and newPassword are required")

    user = get_user(user_id, session=session)
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    validate_password(
        new_password,
        personal=[user.username, user.email, user.first_name, user.last_name],
    )

    with transaction(session):
        user.password_hash = hash_password(new_password)

    revoked = session_service.revoke_all_user_sessions(user.id, reason="Password changed", session=session)
    logger.info("Password changed for user id=%s; %d sessions revoked", user.id, revoked)
    return revoked


def list_users(*, page: int | None = None, per_page: int | None = None, session=None) -> dict:
    """Visible (non-hidden) users, newest first, with optional pagination."""
    session = get_session(session)
    base_query = (
        session.query(User)
        .filter(User.is_hidden.is_(False))
        .order_by(User.created_at.desc(), User.id.desc())
    )

    if page is None:
        users = base_query.all()
        return {"items": [u.to_dict() for u in users], "count": len(users)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    users = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [u.to_dict() for u in users],
        "count": len(users),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def set_blocked(user_id: int, blocked: bool, *, acting_user_id: int | None = None, session=None) -> User:
    session = get_session(session)
    if blocked and acting_user_id == user_id:
        raise ValidationError("You cannot block your own account")
    with transaction(session):
        user = get_user(user_id, session=session)
        user.is_blocked = blocked
    if blocked:
        session_service.revoke_all_user_sessions(user_id, reason="Account blocked", session=session)
    logger.info("User %s %s by user %s", user_id, "blocked" if blocked else "unblocked", acting_user_id)
    return user


def hide_user(user_id: int, *, acting_user_id: int | None = None, session=None) -> User:
    session = get_session(session)
    if acting_user_id == user_id:
        raise ValidationError("You cannot hide your own account")
    with transaction(session):
        user = get_user(user_id, session=session)
        user.is_hidden = True
    session_service.revoke_all_user_sessions(user_id, reason="Account hidden", session=session)
    logger.info("User %s hidden by user %s", user_id, acting_user_id)
    return user


def get_login_history(user_id: int, *, limit: int = 100, session=None) -> list[LoginHistory]:
    session = get_session(session)
    get_user(user_id, session=session)
    return (
        session.query(LoginHistory)
        .filter(LoginHistory.user_id == user_id)
        .order_by(LoginHistory.login_time.desc(), LoginHistory.id.desc())
        .limit(limit)
        .all()
    )


def create_admin(username: str, email: str, password: str, *, session=None) -> tuple[User, bool]:
    """
    Ensure an administrator account exists.

    Returns (user, created). An existing account with that username is
    promoted to administrator rather than duplicated.
    """
    session = get_session(session)
    existing = session.query(User).filter(User.username == username).first()
    if existing is not None:
        if existing.role != ROLE_ADMIN:
            with transaction(session):
                existing.role = ROLE_ADMIN
        return existing, False

    user = register_user(
        {"username": username, "email": email, "password": password},
        role=ROLE_ADMIN,
        session=session,
    )
    return user, True
