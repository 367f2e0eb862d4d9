"""
Process settings, read from the environment (and a `.env` file if present).
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_DATABASE_URL = "sqlite:///timetravel.db"


def _postgres_url(env: Mapping[str, str]) -> Optional[str]:
    if not env.get("POSTGRES_DB"):
        return None
    return (
        "postgresql://"
        + env.get("POSTGRES_USER", "postgres")
        + ":"
        + env.get("POSTGRES_PASSWORD", "")
        + "@"
        + env.get("POSTGRES_HOST", "localhost")
        + "/"
        + env["POSTGRES_DB"]
    )


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from `env` (defaults to ``os.environ`` after `.env`)."""
        if env is None:
            load_dotenv()
            env = os.environ
        return cls(
            database_url=env.get("TIMETRAVEL_DATABASE_URL")
            or _postgres_url(env)
            or DEFAULT_DATABASE_URL,
            host=env.get("TIMETRAVEL_HOST", "127.0.0.1"),
            port=int(env.get("TIMETRAVEL_PORT", "8000")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
