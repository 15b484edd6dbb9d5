"""
Runtime configuration read from environment variables.

All knobs have development defaults so the service starts against a local
SQLite file with remote synchronization disabled.
"""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Service settings. Build from the environment with Settings.from_env()."""
    database_url: str = "sqlite:///./edutracker.db"
    log_level: str = "INFO"

    # Remote store (Supabase REST). Sync is disabled when the URL is unset.
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    remote_timeout_seconds: float = 10.0

    # Outbox worker
    sync_max_attempts: int = 5
    sync_backoff_seconds: float = 2.0
    sync_backoff_max_seconds: float = 300.0
    sync_poll_seconds: float = 5.0
    sync_batch_size: int = 50

    # Load demo classes, students and competencies into an empty cache
    seed_demo_data: bool = True

    @property
    def remote_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./edutracker.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=os.getenv("SUPABASE_KEY") or None,
            remote_timeout_seconds=float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10")),
            sync_max_attempts=int(os.getenv("SYNC_MAX_ATTEMPTS", "5")),
            sync_backoff_seconds=float(os.getenv("SYNC_BACKOFF_SECONDS", "2")),
            sync_backoff_max_seconds=float(os.getenv("SYNC_BACKOFF_MAX_SECONDS", "300")),
            sync_poll_seconds=float(os.getenv("SYNC_POLL_SECONDS", "5")),
            sync_batch_size=int(os.getenv("SYNC_BATCH_SIZE", "50")),
            seed_demo_data=os.getenv("SEED_DEMO_DATA", "1").lower() in {"1", "true", "yes"},
        )
