import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# keep settings/log side effects out of the user's data directory
os.environ.setdefault("OUTBOX_DATA_DIR", tempfile.mkdtemp(prefix="outbox-tests-"))

from sqlmodel import Session  # noqa: E402

from storage.db import init_db, make_engine  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock injected into the dispatcher."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def set(self, value):
        self.now = value
        return self.now


@pytest.fixture()
def engine(tmp_path):
    eng = make_engine(tmp_path / "outbox.db")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def clock():
    return FakeClock()
