import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from edutracker.config import Settings
from edutracker.core import ProgressEngine
from edutracker.errors import PersistenceWarning
from edutracker.models.sync_task import SyncState, SyncOp
from edutracker.remote import MemoryRemoteStore
from edutracker.schemas import AchievementLevel, Bimester, EvaluationRecord, Standing, StudentRecord
from edutracker.services.sync import Outbox, RESYNC_COLLECTIONS
from edutracker.store import STUDENTS, EVALUATIONS, CLASSES, COMPETENCIES, INVITES


def drain(engine):
    return asyncio.run(engine.sync.drain())


@pytest.fixture
def enrolled(synced_engine):
    return synced_engine.students.enroll("Ana Silva", age=7, grade="1º", class_id="c-1")


def test_local_write_is_immediate_and_queued(synced_engine, remote, enrolled):
    assert synced_engine.local.get(STUDENTS, enrolled.id)["name"] == "Ana Silva"
    assert remote.tables == {}
    assert synced_engine.sync.stats()["queue_depth"] == 1

    assert drain(synced_engine) == {"pushed": 1, "failed": 0}
    assert remote.tables[STUDENTS][enrolled.id]["name"] == "Ana Silva"
    stats = synced_engine.sync.stats()
    assert stats["queue_depth"] == 0
    assert stats["acked"] == 1


def test_evaluation_pushes_student_and_row(synced_engine, remote, enrolled):
    drain(synced_engine)
    evaluation = synced_engine.evaluations.record(enrolled.id, "p1", "not_achieved", "b1")
    drain(synced_engine)

    pushed = remote.tables[STUDENTS][enrolled.id]
    assert pushed["standing"] == Standing.NEEDS_REINFORCEMENT.value
    assert pushed["evaluations"][0]["id"] == evaluation.id
    assert evaluation.id in remote.tables[EVALUATIONS]


def test_remote_failure_never_reaches_caller(synced_engine, remote, clock, outbox):
    remote.offline = True
    student = synced_engine.students.enroll("Bruno Gomes")

    assert drain(synced_engine) == {"pushed": 0, "failed": 1}
    assert synced_engine.students.get(student.id).name == "Bruno Gomes"

    task = outbox.tasks(STUDENTS)[0]
    assert task.status == SyncState.LOCAL_WRITTEN.value
    assert task.attempts == 1
    assert "offline" in task.last_error

    # Backing off: nothing is due until the delay passes
    remote.offline = False
    assert drain(synced_engine) == {"pushed": 0, "failed": 0}
    clock.advance(2)
    assert drain(synced_engine) == {"pushed": 1, "failed": 0}
    assert student.id in remote.tables[STUDENTS]


def test_backoff_doubles_and_is_capped(synced_engine, remote, clock, outbox):
    remote.offline = True
    synced_engine.students.enroll("Carla Dias")
    start = clock.now.replace(tzinfo=None)

    drain(synced_engine)
    assert outbox.tasks()[0].next_attempt_at == start + timedelta(seconds=2)

    clock.advance(2)
    drain(synced_engine)
    assert outbox.tasks()[0].next_attempt_at == start + timedelta(seconds=2 + 4)

    # Third delay would be 8s; the cap is 5s
    seq = outbox.tasks()[0].seq
    state = outbox.mark_failed(seq, "boom", clock.now, max_attempts=10,
                               backoff_seconds=2, backoff_max_seconds=5)
    assert state == SyncState.LOCAL_WRITTEN
    assert outbox.tasks()[0].next_attempt_at == start + timedelta(seconds=2 + 5)


def test_task_fails_after_max_attempts_and_can_be_retried(synced_engine, remote, clock, outbox):
    remote.offline = True
    student = synced_engine.students.enroll("Daniel Souza")
    for _ in range(3):
        drain(synced_engine)
        clock.advance(10)

    stats = synced_engine.sync.stats()
    assert stats["failed"] == 1
    assert stats["queue_depth"] == 0
    assert outbox.tasks()[0].attempts == 3

    remote.offline = False
    assert drain(synced_engine) == {"pushed": 0, "failed": 0}
    assert synced_engine.sync.retry_failed() == 1
    assert drain(synced_engine) == {"pushed": 1, "failed": 0}
    assert student.id in remote.tables[STUDENTS]


def test_writes_to_one_record_reach_remote_in_order(synced_engine, remote, clock, outbox):
    student = synced_engine.students.enroll("Ana Silva")
    synced_engine.evaluations.record(student.id, "p1", "not_achieved", "b1")
    synced_engine.evaluations.record(student.id, "p1", "achieved", "b1")
    synced_engine.students.delete(student.id)

    remote.fail_next(1)
    drain(synced_engine)
    # The failed first write blocks every later write to the same student
    assert student.id not in remote.tables.get(STUDENTS, {})
    clock.advance(2)
    drain(synced_engine)

    ops = [(op, rid) for op, collection, rid in remote.calls if collection == STUDENTS]
    assert ops == [
        ("upsert", student.id), ("upsert", student.id), ("upsert", student.id),
        ("upsert", student.id), ("delete", student.id),
    ]
    assert student.id not in remote.tables[STUDENTS]
    assert [t.op for t in outbox.tasks(STUDENTS)] == [
        SyncOp.UPSERT.value, SyncOp.UPSERT.value, SyncOp.UPSERT.value, SyncOp.DELETE.value
    ]


def test_in_flight_tasks_are_released_on_start(synced_engine, outbox, clock, enrolled):
    claimed = outbox.claim_due(clock.now, 10)
    assert len(claimed) == 1
    assert outbox.claim_due(clock.now, 10) == []
    assert synced_engine.sync.stats()["in_flight"] == 1

    assert outbox.release_in_flight() == 1
    assert drain(synced_engine) == {"pushed": 1, "failed": 0}


def test_worker_run_drains_until_stopped(synced_engine, remote, enrolled):
    async def scenario():
        stop = asyncio.Event()
        worker = asyncio.create_task(synced_engine.sync.run(stop))
        for _ in range(50):
            if enrolled.id in remote.tables.get(STUDENTS, {}):
                break
            await asyncio.sleep(0.01)
        stop.set()
        await worker

    asyncio.run(scenario())
    assert enrolled.id in remote.tables[STUDENTS]


def test_newer_write_supersedes_failed_task(synced_engine, remote, clock, outbox):
    remote.offline = True
    student = synced_engine.students.enroll("Ana Silva")
    for _ in range(3):
        drain(synced_engine)
        clock.advance(10)
    assert synced_engine.sync.stats()["failed"] == 1

    remote.offline = False
    synced_engine.evaluations.record(student.id, "p1", "not_achieved", "b1")
    assert synced_engine.sync.stats()["failed"] == 0
    drain(synced_engine)
    assert synced_engine.sync.retry_failed() == 0
    drain(synced_engine)

    assert remote.tables[STUDENTS][student.id]["standing"] == Standing.NEEDS_REINFORCEMENT.value
    assert [t.status for t in outbox.tasks(STUDENTS)] == [
        SyncState.DISCARDED.value, SyncState.REMOTE_ACKED.value
    ]


def test_retry_skips_failed_task_overtaken_by_newer_write(synced_engine, remote, clock, outbox):
    remote.offline = True
    student = synced_engine.students.enroll("Ana Silva")
    evaluation = synced_engine.evaluations.record(student.id, "p1", "not_achieved", "b1")
    for _ in range(3):
        drain(synced_engine)
        clock.advance(10)

    # The enrollment gave up; the later student write was pushed after it
    remote.offline = False
    assert drain(synced_engine) == {"pushed": 1, "failed": 0}
    assert synced_engine.sync.retry_failed() == 1
    assert drain(synced_engine) == {"pushed": 1, "failed": 0}

    assert remote.tables[STUDENTS][student.id]["standing"] == Standing.NEEDS_REINFORCEMENT.value
    assert evaluation.id in remote.tables[EVALUATIONS]
    assert [t.status for t in outbox.tasks(STUDENTS)] == [
        SyncState.DISCARDED.value, SyncState.REMOTE_ACKED.value
    ]


class BrokenOutbox(Outbox):
    def add_task(self, db, collection, record_id, op, payload=None):
        raise RuntimeError("outbox unavailable")


def test_local_write_rolls_back_when_enqueue_fails(local, session_factory, remote, clock, settings):
    engine = ProgressEngine(local, outbox=BrokenOutbox(session_factory), remote=remote,
                            settings=settings, clock=clock)
    with pytest.raises(RuntimeError):
        engine.students.enroll("Ana Silva")
    assert local.list(STUDENTS) == []


class CrashingRemote(MemoryRemoteStore):
    """Fails the first upsert with an error that is not a remote failure."""

    def __init__(self):
        super().__init__()
        self.crashes = 1

    async def upsert(self, collection, record):
        if self.crashes:
            self.crashes -= 1
            raise RuntimeError("database is locked")
        await super().upsert(collection, record)


def test_worker_keeps_draining_after_unexpected_error(local, outbox, clock):
    remote = CrashingRemote()
    settings = Settings(sync_poll_seconds=0.01, seed_demo_data=False)
    engine = ProgressEngine(local, outbox=outbox, remote=remote, settings=settings, clock=clock)
    student = engine.students.enroll("Ana Silva")

    async def scenario():
        stop = asyncio.Event()
        worker = asyncio.create_task(engine.sync.run(stop))
        for _ in range(100):
            if student.id in remote.tables.get(STUDENTS, {}):
                break
            await asyncio.sleep(0.01)
        stop.set()
        await worker

    asyncio.run(scenario())
    assert student.id in remote.tables[STUDENTS]
    stats = engine.sync.stats()
    assert stats["in_flight"] == 0
    assert stats["acked"] == 1


# ── Resync ───────────────────────────────────────────────────

def _remote_rows():
    return {
        STUDENTS: [
            StudentRecord(id="s-9", name="Eva Lima", grade="1º", standing=Standing.DEVELOPING).to_record(),
            {"id": "s-bad"},
        ],
        CLASSES: [{"id": "c-9", "name": "Turma C", "grade": "3º", "shift": "afternoon", "extra": "ignored"}],
        COMPETENCIES: [{"id": "m9", "code": "EF03MA01", "name": "Números", "subject": "Matemática"}],
        INVITES: [{"id": "inv-1", "email": "prof@escola.br", "role": "coordinator"}],
    }


def test_resync_overwrites_local_collections(synced_engine, remote, outbox):
    remote.tables.update({c: {r["id"]: r for r in rows} for c, rows in _remote_rows().items()})
    local_student = synced_engine.students.enroll("Ana Silva")

    summary = asyncio.run(synced_engine.sync.resync())

    assert summary == {STUDENTS: 1, CLASSES: 1, COMPETENCIES: 1, INVITES: 1}
    assert synced_engine.local.get(STUDENTS, local_student.id) is None
    assert synced_engine.students.get("s-9").standing == Standing.DEVELOPING
    assert synced_engine.local.get(CLASSES, "c-9")["name"] == "Turma C"
    assert synced_engine.local.get(INVITES, "inv-1")["status"] == "pending"

    # The unsynced enrollment is dropped instead of being pushed later
    assert synced_engine.sync.stats()["discarded"] == 1
    assert drain(synced_engine) == {"pushed": 0, "failed": 0}
    assert local_student.id not in remote.tables[STUDENTS]


def test_resync_keeps_collection_when_fetch_fails(synced_engine, local, remote):
    remote.tables.update({c: {r["id"]: r for r in rows} for c, rows in _remote_rows().items()})
    local.put(STUDENTS, StudentRecord(id="s-1", name="Ana Silva").to_record())
    remote.fail_next(1)

    summary = asyncio.run(synced_engine.sync.resync())

    assert summary[STUDENTS] is None
    assert summary[CLASSES] == 1
    assert [s["id"] for s in local.list(STUDENTS)] == ["s-1"]


def test_resync_order(synced_engine, remote):
    asyncio.run(synced_engine.sync.resync())
    fetched = [collection for op, collection, _ in remote.calls if op == "fetch_all"]
    assert fetched == list(RESYNC_COLLECTIONS)


def test_memory_remote_failure_injection():
    remote = MemoryRemoteStore({STUDENTS: [{"id": "s-1", "name": "Ana"}]})
    remote.fail_next(1)

    async def scenario():
        with pytest.raises(PersistenceWarning):
            await remote.fetch_all(STUDENTS)
        return await remote.fetch_all(STUDENTS)

    assert asyncio.run(scenario()) == [{"id": "s-1", "name": "Ana"}]


def test_resync_rebuilds_flat_evaluations(synced_engine, local, remote):
    pulled = StudentRecord(id="s-9", name="Eva Lima", standing=Standing.DEVELOPING, evaluations=[
        EvaluationRecord(id="ev-9", student_id="s-9", competency_id="p1", level=AchievementLevel.DEVELOPING,
                         period=Bimester.B1, date=datetime(2024, 3, 5, tzinfo=timezone.utc)),
    ]).to_record()
    remote.tables[STUDENTS] = {"s-9": pulled}
    student = synced_engine.students.enroll("Ana Silva")
    synced_engine.evaluations.record(student.id, "p1", "not_achieved", "b1")

    asyncio.run(synced_engine.sync.resync())

    assert [row["id"] for row in local.list(EVALUATIONS)] == ["ev-9"]
    assert local.get(EVALUATIONS, "ev-9")["student_id"] == "s-9"
    # Queued pushes of the replaced rows are dropped too
    assert drain(synced_engine) == {"pushed": 0, "failed": 0}
    assert EVALUATIONS not in remote.tables
