"""Daily snapshots of the outbox database."""
from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterator

from core.log import get_logger


logger = get_logger("backup")

SNAPSHOT_DATE_FORMAT = "%Y-%m-%d"


def _snapshot_path(db_file: Path, backups: Path, day: date) -> Path:
    return backups / f"{db_file.stem}_{day.strftime(SNAPSHOT_DATE_FORMAT)}{db_file.suffix}"


def _dated_snapshots(db_file: Path, backups: Path) -> Iterator[tuple[date, Path]]:
    prefix = f"{db_file.stem}_"
    for candidate in backups.glob(f"{prefix}*{db_file.suffix}"):
        try:
            taken = datetime.strptime(candidate.stem[len(prefix) :], SNAPSHOT_DATE_FORMAT).date()
        except ValueError:
            continue
        yield taken, candidate


def _snapshot(source: Path, destination: Path) -> None:
    # online backup API: consistent even while WAL writers are active
    src = sqlite3.connect(source)
    try:
        dst = sqlite3.connect(destination)
        try:
            with dst:
                src.backup(dst)
        finally:
            dst.close()
    finally:
        src.close()


def ensure_daily_backup(
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Snapshot ``db_path`` once per day and drop snapshots past ``keep_days``.

    Returns the snapshot written by this call, or ``None`` when today's
    snapshot already exists or there is no database yet.
    """

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)
    today = datetime.now().date()

    destination = _snapshot_path(db_file, backups, today)
    created = None
    if not destination.exists():
        _snapshot(db_file, destination)
        logger.info("Wrote database snapshot %s", destination.name)
        created = destination

    if keep_days > 0:
        oldest_kept = today - timedelta(days=keep_days - 1)
        for taken, snapshot in _dated_snapshots(db_file, backups):
            if taken < oldest_kept:
                snapshot.unlink(missing_ok=True)
                logger.debug("Pruned snapshot %s", snapshot.name)

    return created


__all__ = ["ensure_daily_backup"]
