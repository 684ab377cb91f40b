from __future__ import annotations

from ..extensions import db
from waterstation.time_utils import to_utc_z

ROLE_USER = "User"
ROLE_ADMIN = "Administrator"
ROLES = (ROLE_USER, ROLE_ADMIN)


class User(db.Model):
    """
    Station staff account.

    Users are never hard-deleted: ledger rows and sales keep pointing at
    them for attribution. Blocking prevents login; hiding removes the
    account from listings and also prevents login.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)

    # bcrypt hash
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    role = db.Column(db.String(32), nullable=False, default=ROLE_USER)

    is_blocked = db.Column(db.Boolean, nullable=False, default=False)
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)

    login_count = db.Column(db.Integer, nullable=False, default=0)
    total_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
            "address": self.address,
            "role": self.role,
            "isBlocked": self.is_blocked,
            "loginCount": self.login_count,
            "totalLoginAttempts": self.total_login_attempts,
            "lastLogin": to_utc_z(self.last_login_at),
            "createdAt": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Server-side session record.

    The plaintext token is handed to the client once; only its SHA-256 hash
    is stored. kind is "access" for bearer tokens and "refresh" for the
    long-lived token exchanged at /refresh-token.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, default="access")
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class LoginHistory(db.Model):
    """One row per login attempt, successful or not."""
    __tablename__ = "login_history"
    __table_args__ = (
        db.Index("ix_login_history_user_time", "user_id", "login_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    username = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    success = db.Column(db.Boolean, nullable=False)
    login_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "role": self.role,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "success": self.success,
            "loginTime": to_utc_z(self.login_time),
        }
