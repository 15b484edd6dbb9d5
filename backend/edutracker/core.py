"""
ProgressEngine - the per-process composition of stores and components.

Built once by the application factory and injected into routes; tests build
their own around an in-memory database or MemoryRecordStore.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from fastapi import Request
from sqlalchemy.orm import sessionmaker

from edutracker.config import Settings
from edutracker.remote import RemoteStore
from edutracker.services.attendance import AttendanceTracker
from edutracker.services.catalog import CompetencyCatalog
from edutracker.services.discharge import DischargeWorkflow
from edutracker.services.evaluations import EvaluationRecorder
from edutracker.services.reinforcement import ReinforcementGroupManager
from edutracker.services.reports import standing_summary
from edutracker.services.students import StudentRoster
from edutracker.services.sync import Outbox, SyncedRecordStore, SyncWorker
from edutracker.store import RecordStore, SqlRecordStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressEngine:
    """
    Wires the components around one record store.

    With an outbox, components write through SyncedRecordStore; `local`
    always points at the raw cache. `sync` is None when no remote store is
    configured.
    """

    def __init__(self, local: RecordStore, outbox: Outbox = None, remote: RemoteStore = None,
                 settings: Settings = None, clock: Callable[[], datetime] = _utcnow):
        settings = settings or Settings()
        self.local = local
        self.remote = remote
        self.store = SyncedRecordStore(local, outbox) if outbox is not None else local

        self.sync: Optional[SyncWorker] = None
        if outbox is not None and remote is not None:
            self.sync = SyncWorker(
                local, outbox, remote,
                max_attempts=settings.sync_max_attempts,
                backoff_seconds=settings.sync_backoff_seconds,
                backoff_max_seconds=settings.sync_backoff_max_seconds,
                batch_size=settings.sync_batch_size,
                poll_seconds=settings.sync_poll_seconds,
                clock=clock,
            )

        self.students = StudentRoster(self.store)
        self.catalog = CompetencyCatalog(self.store)
        self.evaluations = EvaluationRecorder(self.store, clock=clock)
        self.groups = ReinforcementGroupManager(self.store)
        self.attendance = AttendanceTracker(self.store, self.groups)
        self.discharge = DischargeWorkflow(self.store, self.evaluations, self.groups, clock=clock)

    def summary(self, class_id: str = None) -> dict:
        return standing_summary(self.store, class_id)


def get_engine(request: Request) -> ProgressEngine:
    """FastAPI dependency returning the engine built by the application factory."""
    return request.app.state.engine


def build_engine(session_factory: sessionmaker, settings: Settings,
                 remote: RemoteStore = None) -> ProgressEngine:
    """SQL-backed engine; the outbox is enabled only when a remote store exists."""
    local = SqlRecordStore(session_factory)
    outbox = Outbox(session_factory) if remote is not None else None
    return ProgressEngine(local, outbox=outbox, remote=remote, settings=settings)
