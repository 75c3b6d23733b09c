# backend/pharmapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmapos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Flat JSON snapshot used when the record store is unreachable.
    # Empty disables both writing and reading it.
    FALLBACK_SNAPSHOT_PATH = os.environ.get("FALLBACK_SNAPSHOT_PATH", "")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Full reconcile before a read once the snapshot is this old; other workers
    # write to the same store. 0 disables the age check.
    SNAPSHOT_MAX_AGE_SECONDS = int(os.environ.get("SNAPSHOT_MAX_AGE_SECONDS", "30"))

    # Window for the "expiring soon" alert
    EXPIRY_ALERT_DAYS = int(os.environ.get("EXPIRY_ALERT_DAYS", "30"))

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
