"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

PLAID_ENV_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "Spare"
    DB_FILENAME = "spare.db"
    TRIAL_DAYS = 30
    DEFAULT_CURRENCY = "USD"
    BILLING_CURRENCY = "cad"
    TESTING = False

    def __init__(self) -> None:
        self.SECRET_KEY = os.getenv("SPARE_SECRET_KEY", "replace-me")
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("SPARE_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("SPARE_DATABASE_URL", self._build_sqlite_url())
        self.TOKEN_MAX_AGE = _env_int("SPARE_TOKEN_MAX_AGE", 7 * 24 * 3600)
        self.APP_URL = os.getenv("SPARE_APP_URL", "http://localhost:5000").rstrip("/")
        self.ENABLE_SCHEDULER = _env_bool("SPARE_ENABLE_SCHEDULER", default=False)

        self.STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
        self.STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

        self.PLAID_CLIENT_ID = os.getenv("PLAID_CLIENT_ID", "")
        self.PLAID_SECRET = os.getenv("PLAID_SECRET", "")
        self.PLAID_ENV = os.getenv("PLAID_ENV", "sandbox").strip().lower()
        self.PLAID_WEBHOOK_URL = os.getenv("PLAID_WEBHOOK_URL", "")

        self.TURNSTILE_SECRET_KEY = os.getenv("TURNSTILE_SECRET_KEY", "")
        self.CRON_SECRET = os.getenv("CRON_SECRET", "")

        if not self.DEV_MODE and self.SECRET_KEY == "replace-me":
            raise ValueError("SPARE_SECRET_KEY must be set in non-dev mode.")
        if self.PLAID_ENV not in PLAID_ENV_HOSTS:
            raise ValueError(f"Invalid PLAID_ENV: {self.PLAID_ENV}")

    def _resolve_data_dir(self) -> Path:
        """Return the directory holding the SQLite file and logs."""

        data_root = os.getenv("SPARE_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        return f"sqlite:///{self.DATA_DIR / self.DB_FILENAME}"

    @property
    def plaid_host(self) -> str:
        return PLAID_ENV_HOSTS[self.PLAID_ENV]

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if self.DATABASE_URL.startswith("sqlite"):
            return {"connect_args": {"check_same_thread": False}}
        return {"pool_pre_ping": True}


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True


class TestConfig(BaseConfig):
    """Configuration used by the test-suite; integrations stay unconfigured."""

    TESTING = True

    def __init__(self) -> None:
        super().__init__()
        self.ENABLE_SCHEDULER = False
