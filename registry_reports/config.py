# registry_reports/config.py

"""
Central configuration for the scheduled-report subsystem.

Values come from the process environment, with a local .env file (if any)
filling in whatever is not already set. Nothing here is mandatory: every
setting has a default suitable for a single-node SQLite deployment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------
#  DEFAULTS
# ---------------------------------------------------------

DEFAULT_DATABASE_URL = "sqlite:///registry_reports.db"
DEFAULT_MAX_WORKERS = 4
# A firing that starts later than this is dropped, never caught up
DEFAULT_MISFIRE_GRACE_SECONDS = 1


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


# ---------------------------------------------------------
#  CONFIG STRUCTURES
# ---------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            echo=_env_flag("DATABASE_ECHO"),
        )


@dataclass(frozen=True)
class SchedulerConfig:
    # IANA zone name used to evaluate cron rules; None means host local time
    timezone: Optional[str] = None
    max_workers: int = DEFAULT_MAX_WORKERS
    misfire_grace_seconds: int = DEFAULT_MISFIRE_GRACE_SECONDS

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        return cls(
            timezone=os.getenv("REPORTS_TIMEZONE", "").strip() or None,
            max_workers=int(os.getenv("REPORTS_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))),
            misfire_grace_seconds=int(
                os.getenv("REPORTS_MISFIRE_GRACE_SECONDS", str(DEFAULT_MISFIRE_GRACE_SECONDS))
            ),
        )


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig
    scheduler: SchedulerConfig


# ---------------------------------------------------------
#  SINGLETON ACCESSOR
# ---------------------------------------------------------

_config_singleton: AppConfig | None = None


def get_config() -> AppConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _config_singleton
    if _config_singleton is None:
        _config_singleton = AppConfig(
            database=DatabaseConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
        )
    return _config_singleton


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config_singleton
    _config_singleton = None
