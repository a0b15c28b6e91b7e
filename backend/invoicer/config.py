# backend/invoicer/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/invoicer.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///invoicer.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Document numbering. Year boundaries are computed in this timezone,
    # never in the server's local time.
    NUMBERING_TIMEZONE = os.environ.get("NUMBERING_TIMEZONE", "UTC")
    NUMBERING_MAX_ATTEMPTS = _int_env("NUMBERING_MAX_ATTEMPTS", 10)
    # Full allocate + insert attempts when the insert hits the
    # document-number unique constraint.
    DOCUMENT_CREATE_ATTEMPTS = _int_env("DOCUMENT_CREATE_ATTEMPTS", 3)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "INR")

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]
