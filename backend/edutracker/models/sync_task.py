"""
SyncTask model - durable outbox entry for one local mutation.

Every put/delete applied to the local cache enqueues a task that the sync
worker pushes to the remote store. Status lifecycle:
- local_written: local write applied, waiting for (another) remote attempt
- remote_pending: claimed by the worker, remote call in flight
- remote_acked: remote store accepted the write
- remote_failed: gave up after the maximum number of attempts
- discarded: superseded by a resync that overwrote the collection
"""

import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, Text, DateTime, String, Index
from edutracker.database import Base


class SyncState(str, enum.Enum):
    LOCAL_WRITTEN = "local_written"
    REMOTE_PENDING = "remote_pending"
    REMOTE_ACKED = "remote_acked"
    REMOTE_FAILED = "remote_failed"
    DISCARDED = "discarded"


class SyncOp(str, enum.Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class SyncTask(Base):
    """SQLAlchemy model for the sync_tasks table."""
    __tablename__ = "sync_tasks"

    seq = Column(Integer, primary_key=True, autoincrement=True,
                 doc="Monotonic sequence; tasks for one record are pushed in this order")
    collection = Column(String(64), nullable=False,
                        doc="Collection the mutation applies to")
    record_id = Column(String(128), nullable=False,
                       doc="Identifier of the mutated record")
    op = Column(String(16), nullable=False,
                doc="upsert | delete")
    payload = Column(Text, nullable=True,
                     doc="Record snapshot as JSON (NULL for deletes)")
    status = Column(String(32), nullable=False, default=SyncState.LOCAL_WRITTEN.value,
                    doc="Lifecycle state, see module docstring")
    attempts = Column(Integer, nullable=False, default=0,
                      doc="Remote attempts made so far")
    last_error = Column(Text, nullable=True,
                        doc="Message of the most recent remote failure")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                        doc="When the local write happened")
    next_attempt_at = Column(DateTime(timezone=True), nullable=True,
                             doc="Earliest time of the next remote attempt (NULL = now)")
    acked_at = Column(DateTime(timezone=True), nullable=True,
                      doc="When the remote store accepted the write")

    __table_args__ = (
        Index("ix_sync_tasks_status", "status"),
        Index("ix_sync_tasks_collection", "collection"),
    )

    def __repr__(self):
        return f"<SyncTask(seq={self.seq}, {self.op} {self.collection}/{self.record_id}, status='{self.status}')>"
