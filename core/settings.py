"""Centralized engine configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``OUTBOX_DATA_DIR`` wins over the platform defaults when set.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())

    override = environ.get("OUTBOX_DATA_DIR")
    if override:
        return Path(override).expanduser()

    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "OutboxSync"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"
BACKUP_DIR = DATA_DIR / "backups"

for _dir in (DATA_DIR, LOG_DIR, BACKUP_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "outbox.db"


@dataclass(frozen=True)
class OutboxSettings:
    base_delay_sec: float = 2.0
    # ceiling for the exponential backoff: worst-case staleness of a stuck item
    max_delay_sec: float = 300.0
    max_retries: int = 5
    drain_interval_sec: int = 60
    batch_limit: int = 100
    stale_lock_sec: int = 600
    per_target_ordering: bool = True
    mirror_actions: tuple[str, ...] = ("CREATE", "UPDATE", "SAVE")


OUTBOX = OutboxSettings()


@dataclass(frozen=True)
class BackupSettings:
    enabled: bool = True
    directory: Path = BACKUP_DIR
    keep_days: int = 7


BACKUP = BackupSettings()


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    filename: str = "sync.log"
    max_bytes: int = 1_000_000
    backup_count: int = 3


LOGGING = LoggingSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "BACKUP_DIR",
    "DB_PATH",
    "OUTBOX",
    "BACKUP",
    "LOGGING",
    "OutboxSettings",
    "BackupSettings",
    "LoggingSettings",
    "get_default_data_dir",
]
