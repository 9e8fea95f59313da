# backend/core_exchange/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/core_exchange.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///core_exchange.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Document numbers: PREFIX-YYYY-NNNN
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "PED")
    ENTRY_REPORT_PREFIX = os.environ.get("ENTRY_REPORT_PREFIX", "ENT")

    # Orders awaiting return longer than this read as OVERDUE
    OVERDUE_AFTER_DAYS = int(os.environ.get("OVERDUE_AFTER_DAYS", "30"))

    # When False, auto-links at entry creation skip the client/product check
    AUTO_LINK_REQUIRE_PRODUCT_MATCH = _env_bool("AUTO_LINK_REQUIRE_PRODUCT_MATCH", True)
