# backend/rentalshop/config.py
from __future__ import annotations
import os


def engine_options(uri: str, timeout_seconds: float) -> dict:
    """Driver-level timeout so a stuck call surfaces instead of hanging."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    if uri.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "connect_args": {"options": f"-c statement_timeout={int(timeout_seconds * 1000)}"},
        }
    return {"pool_pre_ping": True}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rentalshop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///rentalshop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "10"))
    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI, STORE_TIMEOUT_SECONDS)

    # Business rules
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "GLAORD")
    CUSTOMER_NUMBER_PREFIX = os.environ.get("CUSTOMER_NUMBER_PREFIX", "GLA")
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Kolkata")
    CANCEL_WINDOW_MINUTES = int(os.environ.get("CANCEL_WINDOW_MINUTES", "10"))
    # "flagged" or "completed_with_issues"
    ISSUE_STATUS_POLICY = os.environ.get("ISSUE_STATUS_POLICY", "flagged")
    DEFAULT_GST_RATE = os.environ.get("DEFAULT_GST_RATE", "5")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
