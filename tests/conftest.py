import os

# Point the application settings at SQLite before any taskreminder module is imported
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite:///./.pytest_taskreminder.db")
os.environ.setdefault("REMINDER_FONNTE_TOKEN", "test-token")

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from taskreminder.db.base import Base
from taskreminder.models import User
from taskreminder.reminders.exceptions import DeliveryFailure


class FakeGateway:
    """Records messages instead of calling Fonnte."""

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.sent: List[Tuple[str, str]] = []
        self.on_send = None
        self._lock = threading.Lock()

    def send(self, destination: str, text: str) -> dict:
        if self.on_send is not None:
            self.on_send(destination, text)
        if self.fail_with:
            raise DeliveryFailure(self.fail_with)
        with self._lock:
            self.sent.append((destination, text))
        return {"status": True, "detail": "queued"}


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reminders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(id=str(uuid.uuid4()), name="U", phone="628555555555")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """SQLite hands datetimes back naive; they are stored in UTC."""
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


WEEK = timedelta(days=7)
