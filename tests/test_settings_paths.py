import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from core import settings
from storage import backup as backup_module
from storage.backup import ensure_daily_backup


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    expected = Path("/Users/test/Library/Application Support") / settings.APP_NAME
    assert result == expected


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    assert result == Path(env["APPDATA"]) / settings.APP_NAME


def test_explicit_override_wins():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={"OUTBOX_DATA_DIR": "/srv/outbox", "XDG_DATA_HOME": "/tmp/xdg"},
    )
    assert result == Path("/srv/outbox")


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.LOG_DIR.parent == settings.DATA_DIR
    assert settings.BACKUP.directory == settings.BACKUP_DIR
    assert settings.OUTBOX.max_delay_sec == 300


def _write_db(path: Path, value: str) -> None:
    conn = sqlite3.connect(path)
    with conn:
        conn.execute("CREATE TABLE IF NOT EXISTS t (v TEXT)")
        conn.execute("INSERT INTO t (v) VALUES (?)", (value,))
    conn.close()


def test_backup_rotation(monkeypatch, tmp_path):
    db_path = tmp_path / "outbox.db"
    backup_dir = tmp_path / "backups"

    base = datetime(2024, 1, 1)

    for offset in range(5):
        _write_db(db_path, f"content-{offset}")

        class FakeDateTime(datetime):
            @classmethod
            def now(cls, tz=None):
                return base + timedelta(days=offset)

        monkeypatch.setattr(backup_module, "datetime", FakeDateTime)
        ensure_daily_backup(db_path, backup_dir, keep_days=3)

    monkeypatch.setattr(backup_module, "datetime", datetime)

    backups = sorted(p.name for p in backup_dir.iterdir())
    assert backups == [
        "outbox_2024-01-03.db",
        "outbox_2024-01-04.db",
        "outbox_2024-01-05.db",
    ]
    conn = sqlite3.connect(backup_dir / "outbox_2024-01-05.db")
    try:
        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 5
    finally:
        conn.close()


def test_backup_skips_missing_database(tmp_path):
    assert ensure_daily_backup(tmp_path / "absent.db", tmp_path / "backups") is None
