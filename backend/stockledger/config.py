# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Hard cap on date-steps a single cascade may walk per item
    LEDGER_CASCADE_MAX_DAYS = int(os.environ.get("LEDGER_CASCADE_MAX_DAYS", "366"))

    # Used when an organization has no timezone of its own
    LEDGER_DEFAULT_TIMEZONE = os.environ.get("LEDGER_DEFAULT_TIMEZONE", "UTC")
