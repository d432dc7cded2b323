# backend/retailops/config.py
from __future__ import annotations
import os
from dataclasses import dataclass


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Whole-transaction retry on lock/serialization conflicts
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "50"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))


@dataclass(frozen=True)
class ServiceSettings:
    """Tuning knobs handed to the service layer (no Flask import needed there)."""
    retry_attempts: int = 3
    retry_backoff_base: float = 0.1
    default_page_size: int = 50
    max_page_size: int = 200

    @classmethod
    def from_mapping(cls, config) -> "ServiceSettings":
        return cls(
            retry_attempts=int(config.get("RETRY_ATTEMPTS", cls.retry_attempts)),
            retry_backoff_base=float(config.get("RETRY_BACKOFF_BASE", cls.retry_backoff_base)),
            default_page_size=int(config.get("DEFAULT_PAGE_SIZE", cls.default_page_size)),
            max_page_size=int(config.get("MAX_PAGE_SIZE", cls.max_page_size)),
        )
