# backend/stockroom/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockroom.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockroom.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Transaction bounds (seconds). Wait = time to get a pooled connection,
    # timeout = total time a single transaction may run before commit.
    TRANSACTION_MAX_WAIT_SECONDS = _int_env("TRANSACTION_MAX_WAIT_SECONDS", 5)
    TRANSACTION_TIMEOUT_SECONDS = _int_env("TRANSACTION_TIMEOUT_SECONDS", 10)
    BULK_TRANSACTION_TIMEOUT_SECONDS = _int_env("BULK_TRANSACTION_TIMEOUT_SECONDS", 30)

    # SQLite pools do not accept pool_timeout
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_timeout": TRANSACTION_MAX_WAIT_SECONDS,
        }

    # Product listing cache. Unset URL disables caching.
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL")
    PRODUCT_CACHE_MAX_AGE_SECONDS = _int_env("PRODUCT_CACHE_MAX_AGE_SECONDS", 300)

    INVITE_TTL_HOURS = _int_env("INVITE_TTL_HOURS", 24)
    LOW_STOCK_THRESHOLD = _int_env("LOW_STOCK_THRESHOLD", 10)

    # Set by the identity gateway in front of the app after it has
    # verified the caller's session.
    IDENTITY_PRINCIPAL_HEADER = os.environ.get("IDENTITY_PRINCIPAL_HEADER", "X-Auth-Principal")
    IDENTITY_EMAIL_HEADER = os.environ.get("IDENTITY_EMAIL_HEADER", "X-Auth-Email")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
