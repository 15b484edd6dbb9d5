"""
Dual-Write Sync Layer - local cache first, remote store eventually.

Every mutation is applied to the local cache synchronously and recorded in
a durable outbox (sync_tasks table). A background worker pushes outbox
tasks to the remote store with exponential backoff:

    local_written → remote_pending → remote_acked | remote_failed

Remote failures are logged as persistence warnings and never roll back the
local write or reach the caller that made it.

Resync is the opposite direction: it pulls students, classes, competencies
and invites from the remote and overwrites the local collections wholesale
(last remote wins). The flat evaluation rows are rebuilt from the pulled
students. Local changes that were not yet acknowledged are lost.
"""

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from pydantic import ValidationError as SchemaError
from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from edutracker.errors import PersistenceWarning
from edutracker.models.sync_task import SyncTask, SyncState, SyncOp
from edutracker.remote import RemoteStore
from edutracker.schemas import SCHEMAS_BY_COLLECTION
from edutracker.store import RecordStore, SqlRecordStore, STUDENTS, EVALUATIONS, CLASSES, COMPETENCIES, INVITES
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("sync")

RESYNC_COLLECTIONS = (STUDENTS, CLASSES, COMPETENCIES, INVITES)

OPEN_STATES = (SyncState.LOCAL_WRITTEN.value, SyncState.REMOTE_PENDING.value)


def _utc_naive(value: datetime) -> datetime:
    """Normalize to naive UTC so values compare cleanly with SQLite round-trips."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def flatten_evaluations(students: List[dict]) -> List[dict]:
    """
    Build flat evaluation rows from the histories embedded in student records.

    Keeps one row per (student, competency, period), the last one seen.
    """
    by_key = {}
    for student in students:
        for evaluation in student.get("evaluations", []):
            key = (evaluation["student_id"], evaluation["competency_id"], evaluation["period"])
            by_key[key] = evaluation
    return list({evaluation["id"]: evaluation for evaluation in by_key.values()}.values())


class Outbox:
    """Durable queue of pending remote writes, stored in the local database."""

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    @property
    def sessions(self) -> sessionmaker:
        return self._sessions

    def enqueue(self, collection: str, record_id: str, op: SyncOp, payload: dict = None) -> int:
        with self._sessions.begin() as db:
            return self.add_task(db, collection, record_id, op, payload)

    def add_task(self, db: Session, collection: str, record_id: str, op: SyncOp, payload: dict = None) -> int:
        """
        Queue a remote write inside the caller's transaction.

        The new task carries the record's full state, so failed tasks for the
        same record are superseded (discarded) and never retried after it.
        """
        superseded = db.query(SyncTask).filter(
            SyncTask.collection == collection,
            SyncTask.record_id == record_id,
            SyncTask.status == SyncState.REMOTE_FAILED.value
        ).update({SyncTask.status: SyncState.DISCARDED.value}, synchronize_session=False)
        task = SyncTask(
            collection=collection,
            record_id=record_id,
            op=op.value,
            payload=json.dumps(payload) if payload is not None else None,
            status=SyncState.LOCAL_WRITTEN.value,
            attempts=0,
            created_at=_utc_naive(_utcnow()),
        )
        db.add(task)
        db.flush()
        log_with_context(logger, "DEBUG", "Queued remote {} for {}/{}".format(op.value, collection, record_id),
                         context={"task_seq": task.seq, "collection": collection, "record_id": record_id},
                         extra_data={"superseded_failed": superseded})
        return task.seq

    def claim_due(self, now: datetime, limit: int) -> List[dict]:
        """
        Move up to `limit` due tasks to remote_pending and return snapshots.

        At most one task per record is claimed, and a record whose oldest
        open task is in flight or waiting on backoff blocks its later tasks.
        """
        now = _utc_naive(now)
        claimed = []
        with self._sessions.begin() as db:
            open_tasks = db.query(SyncTask).filter(
                SyncTask.status.in_(OPEN_STATES)
            ).order_by(SyncTask.seq).all()

            blocked = set()
            for task in open_tasks:
                key = (task.collection, task.record_id)
                if key in blocked:
                    continue
                blocked.add(key)
                if task.status == SyncState.REMOTE_PENDING.value:
                    continue
                if task.next_attempt_at is not None and _utc_naive(task.next_attempt_at) > now:
                    continue
                if len(claimed) >= limit:
                    continue
                task.status = SyncState.REMOTE_PENDING.value
                claimed.append({
                    "seq": task.seq,
                    "collection": task.collection,
                    "record_id": task.record_id,
                    "op": task.op,
                    "payload": json.loads(task.payload) if task.payload else None,
                    "attempts": task.attempts,
                })
        return claimed

    def mark_acked(self, seq: int, now: datetime):
        with self._sessions.begin() as db:
            task = db.get(SyncTask, seq)
            task.status = SyncState.REMOTE_ACKED.value
            task.attempts += 1
            task.acked_at = _utc_naive(now)
            task.last_error = None

    def mark_failed(self, seq: int, error: str, now: datetime, max_attempts: int,
                    backoff_seconds: float, backoff_max_seconds: float) -> SyncState:
        with self._sessions.begin() as db:
            task = db.get(SyncTask, seq)
            task.attempts += 1
            task.last_error = error[:1000]
            if task.attempts >= max_attempts:
                task.status = SyncState.REMOTE_FAILED.value
                task.next_attempt_at = None
            else:
                delay = min(backoff_seconds * (2 ** (task.attempts - 1)), backoff_max_seconds)
                task.status = SyncState.LOCAL_WRITTEN.value
                task.next_attempt_at = _utc_naive(now) + timedelta(seconds=delay)
            return SyncState(task.status)

    def release_in_flight(self) -> int:
        """Return tasks left in remote_pending (e.g. by a crash) to the queue."""
        with self._sessions.begin() as db:
            return db.query(SyncTask).filter(
                SyncTask.status == SyncState.REMOTE_PENDING.value
            ).update({SyncTask.status: SyncState.LOCAL_WRITTEN.value}, synchronize_session=False)

    def retry_failed(self) -> int:
        """
        Requeue remote_failed tasks with a fresh attempt budget.

        A failed task with a newer task for the same record is discarded
        instead, so an old payload never lands after a newer one.
        """
        requeued = 0
        with self._sessions.begin() as db:
            failed = db.query(SyncTask).filter(
                SyncTask.status == SyncState.REMOTE_FAILED.value
            ).order_by(SyncTask.seq.desc()).all()
            for task in failed:
                newer = db.query(SyncTask.seq).filter(
                    SyncTask.collection == task.collection,
                    SyncTask.record_id == task.record_id,
                    SyncTask.seq > task.seq,
                    SyncTask.status != SyncState.DISCARDED.value
                ).first()
                if newer is not None:
                    task.status = SyncState.DISCARDED.value
                    continue
                task.status = SyncState.LOCAL_WRITTEN.value
                task.attempts = 0
                task.next_attempt_at = None
                requeued += 1
        return requeued

    def discard(self, collection: str) -> int:
        """Drop queued (not in-flight) tasks of a collection."""
        with self._sessions.begin() as db:
            return db.query(SyncTask).filter(
                SyncTask.collection == collection,
                SyncTask.status == SyncState.LOCAL_WRITTEN.value
            ).update({SyncTask.status: SyncState.DISCARDED.value}, synchronize_session=False)

    def counts(self) -> Dict[str, int]:
        with self._sessions() as db:
            rows = db.query(SyncTask.status, func.count(SyncTask.seq)).group_by(SyncTask.status).all()
        counts = {state.value: 0 for state in SyncState}
        counts.update({status: count for status, count in rows})
        return counts

    def tasks(self, collection: str = None) -> List[SyncTask]:
        with self._sessions() as db:
            query = db.query(SyncTask)
            if collection:
                query = query.filter(SyncTask.collection == collection)
            return query.order_by(SyncTask.seq).all()


class SyncedRecordStore(RecordStore):
    """
    Record store that writes the local cache and enqueues the remote mirror.

    Reads are served from the local cache only. When the cache lives in the
    outbox's database, the write and its outbox task commit in one
    transaction; otherwise the cache is written first.
    """

    def __init__(self, local: RecordStore, outbox: Outbox):
        self.local = local
        self.outbox = outbox
        self._shared = isinstance(local, SqlRecordStore) and local.sessions is outbox.sessions

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        return self.local.get(collection, record_id)

    def list(self, collection: str, **where) -> List[dict]:
        return self.local.list(collection, **where)

    def put(self, collection: str, record: dict) -> dict:
        if not self._shared:
            self.local.put(collection, record)
            self.outbox.enqueue(collection, record["id"], SyncOp.UPSERT, record)
            return record
        with self.outbox.sessions.begin() as db:
            self.local.write_row(db, collection, record)
            self.outbox.add_task(db, collection, record["id"], SyncOp.UPSERT, record)
        return record

    def delete(self, collection: str, record_id: str) -> bool:
        if not self._shared:
            existed = self.local.delete(collection, record_id)
            self.outbox.enqueue(collection, record_id, SyncOp.DELETE)
            return existed
        with self.outbox.sessions.begin() as db:
            existed = self.local.delete_row(db, collection, record_id)
            self.outbox.add_task(db, collection, record_id, SyncOp.DELETE)
        return existed

    def replace_all(self, collection: str, records: List[dict]) -> int:
        # Local only; used when the remote is the source of the records
        return self.local.replace_all(collection, records)


class SyncWorker:
    """Pushes outbox tasks to the remote store and pulls remote snapshots."""

    def __init__(self, local: RecordStore, outbox: Outbox, remote: RemoteStore,
                 max_attempts: int = 5, backoff_seconds: float = 2.0,
                 backoff_max_seconds: float = 300.0, batch_size: int = 50,
                 poll_seconds: float = 5.0, clock: Callable[[], datetime] = _utcnow):
        self.local = local
        self.outbox = outbox
        self.remote = remote
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.batch_size = batch_size
        self.poll_seconds = poll_seconds
        self._clock = clock

    async def _push(self, task: dict):
        if task["op"] == SyncOp.DELETE.value:
            await self.remote.delete(task["collection"], task["record_id"])
        else:
            await self.remote.upsert(task["collection"], task["payload"])

    async def drain(self) -> Dict[str, int]:
        """Push every task that is due now. Returns pushed/failed counts."""
        start_time = time.time()
        pushed = 0
        failed = 0

        while True:
            now = self._clock()
            batch = self.outbox.claim_due(now, self.batch_size)
            if not batch:
                break
            for task in batch:
                context = {
                    "task_seq": task["seq"],
                    "collection": task["collection"],
                    "record_id": task["record_id"],
                }
                try:
                    await self._push(task)
                except PersistenceWarning as e:
                    state = self.outbox.mark_failed(
                        task["seq"], str(e), self._clock(), self.max_attempts,
                        self.backoff_seconds, self.backoff_max_seconds
                    )
                    failed += 1
                    level = "ERROR" if state == SyncState.REMOTE_FAILED else "WARNING"
                    log_with_context(logger, level,
                        "Remote {} failed ({}): {}".format(task["op"], state.value, e),
                        context=context,
                        extra_data={"attempts": task["attempts"] + 1, "status_code": e.status_code})
                    continue
                self.outbox.mark_acked(task["seq"], self._clock())
                pushed += 1

        if pushed or failed:
            duration_ms = (time.time() - start_time) * 1000
            log_with_context(logger, "INFO",
                "Outbox drained: {} pushed, {} failed".format(pushed, failed),
                extra_data={"duration_ms": round(duration_ms, 2), **self.stats()})
        return {"pushed": pushed, "failed": failed}

    async def run(self, stop: asyncio.Event):
        """
        Drain the outbox every poll interval until `stop` is set.

        A failed drain is logged and retried on the next poll; tasks it left
        in remote_pending are released first.
        """
        released = self.outbox.release_in_flight()
        log_with_context(logger, "INFO", "Sync worker started",
                         extra_data={"released_in_flight": released, "poll_seconds": self.poll_seconds})
        recovering = False
        while not stop.is_set():
            try:
                if recovering:
                    self.outbox.release_in_flight()
                    recovering = False
                await self.drain()
            except Exception as e:
                recovering = True
                log_with_context(logger, "ERROR", "Outbox drain failed: {}".format(e),
                                 extra_data={"error": type(e).__name__})
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass
        log_with_context(logger, "INFO", "Sync worker stopped")

    def stats(self) -> Dict[str, int]:
        counts = self.outbox.counts()
        return {
            "queue_depth": counts[SyncState.LOCAL_WRITTEN.value] + counts[SyncState.REMOTE_PENDING.value],
            "in_flight": counts[SyncState.REMOTE_PENDING.value],
            "acked": counts[SyncState.REMOTE_ACKED.value],
            "failed": counts[SyncState.REMOTE_FAILED.value],
            "discarded": counts[SyncState.DISCARDED.value],
        }

    def retry_failed(self) -> int:
        requeued = self.outbox.retry_failed()
        log_with_context(logger, "INFO", "Requeued {} failed sync tasks".format(requeued))
        return requeued

    def _replace_local(self, collection: str, records: List[dict]) -> int:
        discarded = self.outbox.discard(collection)
        if discarded:
            log_with_context(logger, "WARNING",
                "Resync discarded {} unsynced local changes in {}".format(discarded, collection),
                context={"collection": collection})
        return self.local.replace_all(collection, records)

    async def resync(self) -> Dict[str, Optional[int]]:
        """
        Overwrite local students, classes, competencies and invites with the
        remote copies, then rebuild the flat evaluation rows from the pulled
        students. A collection whose fetch fails is left untouched and
        reported as None.
        """
        start_time = time.time()
        summary = {}
        for collection in RESYNC_COLLECTIONS:
            try:
                rows = await self.remote.fetch_all(collection)
            except PersistenceWarning as e:
                log_with_context(logger, "WARNING", "Resync of {} skipped: {}".format(collection, e),
                                 context={"collection": collection})
                summary[collection] = None
                continue

            schema = SCHEMAS_BY_COLLECTION[collection]
            records = []
            for row in rows:
                try:
                    records.append(schema.model_validate(row).to_record())
                except SchemaError as e:
                    log_with_context(logger, "WARNING", "Dropping malformed remote {} row".format(collection),
                                     context={"collection": collection, "record_id": row.get("id")},
                                     extra_data={"errors": e.errors(include_url=False)})

            summary[collection] = self._replace_local(collection, records)
            if collection == STUDENTS:
                self._replace_local(EVALUATIONS, flatten_evaluations(records))

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO", "Resync complete",
                         extra_data={"duration_ms": round(duration_ms, 2), "summary": summary})
        return summary
