from datetime import datetime, timedelta, timezone

import pytest

from edutracker.config import Settings
from edutracker.core import ProgressEngine
from edutracker.database import make_engine, make_session_factory, create_tables
from edutracker.remote import MemoryRemoteStore
from edutracker.schemas import StudentRecord, Standing
from edutracker.services.sync import Outbox
from edutracker.store import SqlRecordStore, STUDENTS


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start=datetime(2024, 5, 10, 14, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def local(session_factory):
    return SqlRecordStore(session_factory)


@pytest.fixture
def outbox(session_factory):
    return Outbox(session_factory)


@pytest.fixture
def remote():
    return MemoryRemoteStore()


@pytest.fixture
def settings():
    return Settings(sync_max_attempts=3, sync_backoff_seconds=2, sync_backoff_max_seconds=5,
                    seed_demo_data=False)


@pytest.fixture
def engine(local, clock, settings):
    """Engine over the SQL cache with no remote configured."""
    return ProgressEngine(local, settings=settings, clock=clock)


@pytest.fixture
def synced_engine(local, outbox, remote, clock, settings):
    """Engine writing through the outbox to an in-memory remote."""
    return ProgressEngine(local, outbox=outbox, remote=remote, settings=settings, clock=clock)


def add_student(store, student_id, name, standing=Standing.ADEQUATE, class_id="c-1"):
    student = StudentRecord(id=student_id, name=name, grade="1º", class_id=class_id, standing=standing)
    store.put(STUDENTS, student.to_record())
    return student


@pytest.fixture
def students(local):
    """Three enrolled students written straight to the local cache."""
    return [
        add_student(local, "s-1", "Ana Silva"),
        add_student(local, "s-2", "Bruno Gomes", standing=Standing.NEEDS_REINFORCEMENT),
        add_student(local, "s-3", "Carla Dias", standing=Standing.NEEDS_REINFORCEMENT, class_id="c-2"),
    ]
