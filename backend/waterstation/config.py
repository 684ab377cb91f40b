# backend/waterstation/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/waterstation.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///waterstation.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session tokens
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)
    REFRESH_TOKEN_DAYS = _env_int("REFRESH_TOKEN_DAYS", 7)

    # bcrypt cost factor
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Frontend dev servers allowed to call the API
    CORS_ORIGINS = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Administrator seeded by `flask users create-admin`
    ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@joywater.com")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    # Low cost factor keeps the suite fast
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"
