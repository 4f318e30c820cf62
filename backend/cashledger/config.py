# backend/cashledger/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cashledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Chart-of-accounts code of the company "cash on hand" account
    CASH_ACCOUNT_CODE = os.environ.get("CASH_ACCOUNT_CODE", "1.1.01")

    # Closing with a cash difference requires an explanatory note when enabled
    REQUIRE_CLOSING_NOTE_ON_DIFFERENCE = _env_flag("REQUIRE_CLOSING_NOTE_ON_DIFFERENCE", False)

    # SQLite ignores SELECT ... FOR UPDATE; take the write lock up front instead
    SQLITE_BEGIN_IMMEDIATE = _env_flag("SQLITE_BEGIN_IMMEDIATE", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
