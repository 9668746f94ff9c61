# outbox/storage/db.py
from pathlib import Path

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH, BACKUP
from storage.backup import ensure_daily_backup

# Ensure SQLModel metadata is populated
import models.queue_item  # noqa: F401
import models.mirror  # noqa: F401
from storage import migrations


def _apply_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    # enqueue must survive a crash before it returns
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def make_engine(path: Path):
    engine = create_engine(f"sqlite:///{Path(path).as_posix()}", echo=False)
    event.listen(engine, "connect", _apply_pragmas)
    return engine


_engine = make_engine(DB_PATH)


def init_db(engine=None):
    target = engine or _engine
    if engine is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(target)
    migrations.run_all(target)
    if engine is None and BACKUP.enabled:
        ensure_daily_backup(DB_PATH, BACKUP.directory, keep_days=BACKUP.keep_days)


def get_engine():
    return _engine


def get_session() -> Session:
    return Session(_engine)
