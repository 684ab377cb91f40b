# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

Opaque bearer tokens with automatic timeout and revocation. Tokens are
cryptographically random, only their hash is stored, and they are
time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, access tokens)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, access tokens)
- Refresh tokens live REFRESH_TOKEN_DAYS and are only accepted by refresh()
- Revocable on logout, password change, block/hide
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..models import SessionToken, User
from ..errors import AuthenticationError
from waterstation.time_utils import utcnow
from .concurrency import get_session, transaction

logger = logging.getLogger(__name__)

KIND_ACCESS = "access"
KIND_REFRESH = "refresh"

_DEFAULTS = {
    "SESSION_ABSOLUTE_TIMEOUT_HOURS": 24,
    "SESSION_IDLE_TIMEOUT_HOURS": 2,
    "REFRESH_TOKEN_DAYS": 7,
}


def _setting(name: str) -> int:
    if has_app_context():
        return int(current_app.config.get(name, _DEFAULTS[name]))
    return _DEFAULTS[name]


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of validate_session().

    ok=False carries the reason the token was rejected; user is None then.
    """
    ok: bool
    user: User | None = None
    token: SessionToken | None = None
    reason: str | None = None


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient here: tokens are high-entropy, unlike passwords."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    *,
    kind: str = KIND_ACCESS,
    user_agent: str | None = None,
    ip_address: str | None = None,
    session=None,
) -> tuple[SessionToken, str]:
    """
    Create a session token for a user.

    Returns (session_record, plaintext_token). The client receives the
    plaintext token; the database stores only the hash.
    """
    session = get_session(session)
    plaintext_token = generate_token()
    now = utcnow()
    if kind == KIND_REFRESH:
        expires_at = now + timedelta(days=_setting("REFRESH_TOKEN_DAYS"))
    else:
        expires_at = now + timedelta(hours=_setting("SESSION_ABSOLUTE_TIMEOUT_HOURS"))

    record = SessionToken(
        user_id=user_id,
        kind=kind,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=expires_at,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    with transaction(session):
        session.add(record)
    return record, plaintext_token


def create_token_pair(user_id: int, *, user_agent: str | None = None, ip_address: str | None = None,
                      session=None) -> dict:
    """Access + refresh token issued at login."""
    _, token = create_session(user_id, user_agent=user_agent, ip_address=ip_address, session=session)
    _, refresh_token = create_session(
        user_id, kind=KIND_REFRESH, user_agent=user_agent, ip_address=ip_address, session=session,
    )
    return {"token": token, "refreshToken": refresh_token}


def _revoke(record: SessionToken, reason: str, now) -> None:
    record.is_revoked = True
    record.revoked_at = now
    record.revoked_reason = reason


def validate_session(token: str | None, *, kind: str = KIND_ACCESS, session=None) -> AuthResult:
    """
    Validate a token of the given kind.

    Idle access tokens, and tokens of blocked or hidden users, are revoked
    as a side effect. A valid access token has its last_used_at bumped.
    """
    session = get_session(session)
    if not token:
        return AuthResult(ok=False, reason="missing")

    record = (
        session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), kind=kind, is_revoked=False)
        .first()
    )
    if record is None:
        return AuthResult(ok=False, reason="invalid")

    now = utcnow()
    if record.expires_at < now:
        return AuthResult(ok=False, reason="expired")

    if kind == KIND_ACCESS:
        idle = now - record.last_used_at
        if idle > timedelta(hours=_setting("SESSION_IDLE_TIMEOUT_HOURS")):
            with transaction(session):
                _revoke(record, "Idle timeout", now)
            return AuthResult(ok=False, reason="idle")

    user = record.user
    if user is None or user.is_blocked or user.is_hidden:
        with transaction(session):
            _revoke(record, "User account disabled", now)
        return AuthResult(ok=False, reason="disabled")

    if kind == KIND_ACCESS:
        with transaction(session):
            record.last_used_at = now

    return AuthResult(ok=True, user=user, token=record)


def refresh(refresh_token: str | None, *, user_agent: str | None = None, ip_address: str | None = None,
            session=None) -> str:
    """Exchange a refresh token for a new access token."""
    if not refresh_token:
        raise AuthenticationError("Refresh token required")
    result = validate_session(refresh_token, kind=KIND_REFRESH, session=session)
    if not result.ok:
        raise AuthenticationError("Invalid or expired refresh token")
    _, token = create_session(result.user.id, user_agent=user_agent, ip_address=ip_address, session=session)
    return token


def revoke_session(token: str, reason: str = "User logout", *, session=None) -> bool:
    """
    Revoke a token of any kind.

    Returns True if it was revoked, False if not found or already revoked.
    """
    session = get_session(session)
    record = (
        session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if record is None:
        return False
    with transaction(session):
        _revoke(record, reason, utcnow())
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, session=None) -> int:
    """Revoke every active token of a user; returns the count."""
    session = get_session(session)
    now = utcnow()
    with transaction(session):
        records = session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
        for record in records:
            _revoke(record, reason, now)
    if records:
        logger.info("Revoked %d sessions for user %s (%s)", len(records), user_id, reason)
    return len(records)


def cleanup_expired_sessions(*, older_than_days: int = 30, session=None) -> int:
    """Delete expired or revoked tokens created before the cutoff."""
    session = get_session(session)
    cutoff = utcnow() - timedelta(days=older_than_days)
    with transaction(session):
        deleted = (
            session.query(SessionToken)
            .filter(
                (SessionToken.expires_at < utcnow()) | SessionToken.is_revoked.is_(True),
                SessionToken.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
    return deleted
