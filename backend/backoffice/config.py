# backend/backoffice/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _csv_env(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def external_bind_options(url: str, query_timeout: int) -> dict:
    """
    Engine options for the read-only external bind.

    pool_pre_ping drops connections the external server closed while idle.
    MySQL drivers get connect/read timeouts so a hung query surfaces as a
    connectivity failure instead of blocking an import run forever.
    """
    options: dict = {"url": url, "pool_pre_ping": True}
    if url.startswith("mysql"):
        options["connect_args"] = {
            "connect_timeout": query_timeout,
            "read_timeout": query_timeout,
        }
    elif url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": query_timeout,
            "options": f"-c statement_timeout={query_timeout * 1000}",
        }
    return options


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local back-office database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External read-only order/expense database. Left unset, the import
    # subsystem refuses to run (ConfigurationError) but the app still boots.
    EXTERNAL_DATABASE_URL = os.environ.get("EXTERNAL_DATABASE_URL")
    EXTERNAL_QUERY_TIMEOUT_SECONDS = _int_env("EXTERNAL_QUERY_TIMEOUT_SECONDS", 30)
    EXTERNAL_FETCH_SIZE = _int_env("EXTERNAL_FETCH_SIZE", 1000)
    EXTERNAL_ITEM_BATCH_SIZE = _int_env("EXTERNAL_ITEM_BATCH_SIZE", 100)

    # Access cache
    ACCESS_CACHE_TTL_SECONDS = _int_env("ACCESS_CACHE_TTL_SECONDS", 600)
    ACCESS_CACHE_DISABLED_KINDS = _csv_env("ACCESS_CACHE_DISABLED_KINDS")

    # Import pipeline
    IMPORT_CHUNK_SIZE = _int_env("IMPORT_CHUNK_SIZE", 100)
    IMPORT_CHECKPOINT_EVERY = _int_env("IMPORT_CHECKPOINT_EVERY", 100)
    IMPORT_CONNECTIVITY_RETRIES = _int_env("IMPORT_CONNECTIVITY_RETRIES", 3)
    IMPORT_RETRY_BACKOFF_SECONDS = float(os.environ.get("IMPORT_RETRY_BACKOFF_SECONDS", "1.0"))
    IMPORT_LOCK_TIMEOUT_SECONDS = _int_env("IMPORT_LOCK_TIMEOUT_SECONDS", 3600)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
