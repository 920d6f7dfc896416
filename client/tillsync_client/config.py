# client/tillsync_client/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

ENGINE_CHOICES = ("auto", "sql", "kv")


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass
class ClientConfig:
    # Backend origin, no trailing slash
    base_url: str = "http://127.0.0.1:5000"

    # None keeps the local store in memory (tests, kiosks without disk)
    local_db_path: Optional[str] = None

    # "auto" picks sql when the platform SQLite supports UPSERT, kv otherwise
    local_engine: str = "auto"

    # Seed demo merchants/products (every init) and demo receipts (once)
    seed_demo_data: bool = True

    # Sync policy used by the background queue processor
    sync_interval_seconds: float = 5.0
    sync_base_backoff_ms: int = 2000
    sync_max_attempts: int = 5

    request_timeout_seconds: float = 10.0
    currency: str = "EUR"

    def __post_init__(self):
        if self.local_engine not in ENGINE_CHOICES:
            raise ValueError(
                f"local_engine must be one of {', '.join(ENGINE_CHOICES)}, got {self.local_engine!r}"
            )
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=os.environ.get("TILLSYNC_BASE_URL", "http://127.0.0.1:5000"),
            local_db_path=os.environ.get("TILLSYNC_LOCAL_DB_PATH") or None,
            local_engine=os.environ.get("TILLSYNC_LOCAL_ENGINE", "auto").lower(),
            seed_demo_data=os.environ.get("TILLSYNC_SEED_DEMO_DATA", "true").lower() == "true",
            sync_interval_seconds=_env_float("TILLSYNC_SYNC_INTERVAL_SECONDS", 5.0),
            sync_base_backoff_ms=_env_int("TILLSYNC_SYNC_BASE_BACKOFF_MS", 2000),
            sync_max_attempts=_env_int("TILLSYNC_SYNC_MAX_ATTEMPTS", 5),
            request_timeout_seconds=_env_float("TILLSYNC_REQUEST_TIMEOUT_SECONDS", 10.0),
            currency=os.environ.get("TILLSYNC_CURRENCY", "EUR").upper(),
        )
