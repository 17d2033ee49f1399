# backend/erms/config.py
from __future__ import annotations
import os


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/erms.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///erms.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # System and test accounts that never show up in approval queues
    QUEUE_EXCLUDED_EMPLOYEE_IDS = _env_list("QUEUE_EXCLUDED_EMPLOYEE_IDS", "T-123,admin")

    # Dashboard badge cache lifetime (0 disables caching)
    COUNTER_CACHE_TTL_SECONDS = int(os.environ.get("COUNTER_CACHE_TTL_SECONDS", "60"))

    # When enabled, new deployments wait for accounting before the asset leaves stock
    DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL = _env_bool("DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL")

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )
