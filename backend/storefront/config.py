# backend/storefront/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file by default; point DATABASE_URL at MySQL/Postgres in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection pool (server databases only). max_overflow=0 keeps capacity fixed;
    # callers wait up to DB_POOL_TIMEOUT seconds for a free connection.
    DB_POOL_SIZE = _int_env("DB_POOL_SIZE", 10)
    DB_POOL_MAX_OVERFLOW = _int_env("DB_POOL_MAX_OVERFLOW", 0)
    DB_POOL_TIMEOUT = _int_env("DB_POOL_TIMEOUT", 30)
    DB_POOL_RECYCLE = _int_env("DB_POOL_RECYCLE", 1800)

    TX_RETRY_ATTEMPTS = _int_env("TX_RETRY_ATTEMPTS", 3)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
    SESSION_TTL_HOURS = _int_env("SESSION_TTL_HOURS", 24)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOW_STOCK_THRESHOLD = _int_env("LOW_STOCK_THRESHOLD", 10)

    # Loyalty points earned per whole currency unit of a completed order; 0 disables earning
    POINTS_PER_UNIT = _int_env("POINTS_PER_UNIT", 1)

    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    TX_RETRY_ATTEMPTS = 1
    LOG_LEVEL = "WARNING"
