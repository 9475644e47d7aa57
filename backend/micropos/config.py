# backend/micropos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/micropos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///micropos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # What cash-moving operations do when no cash session is OPEN:
    # "sentinel" tags the cash row NO_SESSION, "strict" raises NoActiveSessionError.
    CASH_SESSION_POLICY = os.environ.get("CASH_SESSION_POLICY", "sentinel").lower()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CASH_SESSION_POLICY = "sentinel"
    LOG_LEVEL = "DEBUG"
