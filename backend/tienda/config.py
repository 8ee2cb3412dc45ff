# backend/tienda/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tienda.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tienda.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Uploaded payment proofs (QR screenshots, transfer receipts)
    ARTIFACT_DIR = os.environ.get("ARTIFACT_DIR", "")
    ALLOWED_ARTIFACT_EXTENSIONS = {"png", "jpg", "jpeg", "pdf", "webp"}
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    # Ledger contention: OperationalError / StaleDataError retries
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))
