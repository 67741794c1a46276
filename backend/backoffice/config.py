# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Read-through cache. Unset REDIS_URL disables caching (pass-through reads).
    REDIS_URL = os.environ.get("REDIS_URL")
    CACHE_DEFAULT_TTL = int(os.environ.get("CACHE_DEFAULT_TTL", "300"))

    # Stock ledger locking. Exceeding either aborts the transaction with LockTimeout.
    STOCK_LOCK_TIMEOUT_MS = int(os.environ.get("STOCK_LOCK_TIMEOUT_MS", "5000"))
    TRANSACTION_TIMEOUT_MS = int(os.environ.get("TRANSACTION_TIMEOUT_MS", "10000"))

    # Register reconciliation
    DEFAULT_VARIANCE_THRESHOLD_CENTS = int(os.environ.get("DEFAULT_VARIANCE_THRESHOLD_CENTS", "1000"))
    ENFORCE_SINGLE_OPEN_REGISTER = _env_bool("ENFORCE_SINGLE_OPEN_REGISTER", True)

    # Sales: False lets a sale drive stock negative (backorder signal), True rejects it.
    SALE_BLOCKS_OVERSELL = _env_bool("SALE_BLOCKS_OVERSELL", False)

    DEFAULT_LOYALTY_VISITS_REQUIRED = int(os.environ.get("DEFAULT_LOYALTY_VISITS_REQUIRED", "6"))

    # Manager PINs
    PIN_MAX_FAILED_ATTEMPTS = int(os.environ.get("PIN_MAX_FAILED_ATTEMPTS", "5"))
    PIN_LOCKOUT_MINUTES = int(os.environ.get("PIN_LOCKOUT_MINUTES", "15"))
    PIN_BCRYPT_ROUNDS = int(os.environ.get("PIN_BCRYPT_ROUNDS", "12"))
