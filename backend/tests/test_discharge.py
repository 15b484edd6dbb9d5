from datetime import date, datetime, timezone

import pytest

from edutracker.errors import DischargeIncompleteError, NotFoundError, ValidationError
from edutracker.schemas import AchievementLevel, Bimester, Standing
from edutracker.services.discharge import DISCHARGE_COMPETENCY_ID, DischargeWorkflow
from edutracker.services.reinforcement import ReinforcementGroupManager
from edutracker.store import HISTORY


@pytest.fixture
def group(engine, students):
    return engine.groups.create("Reforço de Leitura", "Português", ["s-2", "s-3"],
                                start_date=date(2024, 3, 1))


def test_discharge_runs_every_step(engine, group, clock):
    entry = engine.discharge.discharge(group.id, "s-2", "achieved", final_score=8, feedback="Concluiu bem")

    student = engine.students.get("s-2")
    assert student.standing == Standing.ADEQUATE
    final = student.evaluations[-1]
    assert final.competency_id == DISCHARGE_COMPETENCY_ID
    assert final.level == AchievementLevel.ACHIEVED
    assert final.period == Bimester.B2
    assert final.score == 8
    assert final.max_score == 10

    assert entry.student_name == "Bruno Gomes"
    assert entry.group_name == "Reforço de Leitura"
    assert entry.subject == "Português"
    assert entry.start_date == date(2024, 3, 1)
    assert entry.completed_at == clock.now
    assert engine.store.get(HISTORY, entry.id) is not None

    assert engine.groups.get(group.id).member_ids == ["s-3"]


def test_not_achieved_discharge_gives_developing(engine, group):
    engine.discharge.discharge(group.id, "s-3", "not_achieved")
    assert engine.students.get("s-3").standing == Standing.DEVELOPING


def test_repeated_discharge_appends_history(engine, group, clock):
    engine.discharge.discharge(group.id, "s-2", "developing")
    clock.now = datetime(2024, 8, 1, 9, 0, tzinfo=timezone.utc)
    engine.discharge.discharge(group.id, "s-2", "exceeded")

    entries = engine.discharge.history(student_id="s-2")
    assert len(entries) == 2
    assert entries[0].completed_at > entries[1].completed_at

    student = engine.students.get("s-2")
    assert student.standing == Standing.ADEQUATE
    # One final evaluation per bimester
    assert [e.period for e in student.evaluations] == [Bimester.B2, Bimester.B3]
    assert engine.groups.get(group.id).member_ids == ["s-3"]


def test_same_bimester_discharge_replaces_final_evaluation(engine, group):
    engine.discharge.discharge(group.id, "s-2", "developing")
    engine.discharge.discharge(group.id, "s-2", "achieved")
    finals = [e for e in engine.students.get("s-2").evaluations if e.competency_id == DISCHARGE_COMPETENCY_ID]
    assert len(finals) == 1
    assert finals[0].level == AchievementLevel.ACHIEVED


def test_validation_happens_before_any_write(engine, group):
    with pytest.raises(ValidationError):
        engine.discharge.discharge(group.id, "s-2", "great")
    with pytest.raises(ValidationError):
        engine.discharge.discharge(group.id, "s-2", "achieved", final_score=12)
    with pytest.raises(NotFoundError):
        engine.discharge.discharge("grp-404", "s-2", "achieved")
    with pytest.raises(NotFoundError):
        engine.discharge.discharge(group.id, "s-404", "achieved")

    assert engine.discharge.history() == []
    assert engine.students.get("s-2").standing == Standing.NEEDS_REINFORCEMENT


class BrokenRosterManager(ReinforcementGroupManager):
    def remove_member(self, group_id, student_id):
        raise RuntimeError("disk full")


def test_roster_failure_reports_incomplete_discharge(engine, group, clock):
    groups = BrokenRosterManager(engine.store)
    workflow = DischargeWorkflow(engine.store, engine.evaluations, groups, clock=clock)

    with pytest.raises(DischargeIncompleteError) as excinfo:
        workflow.discharge(group.id, "s-2", "achieved")

    error = excinfo.value
    assert (error.group_id, error.student_id) == (group.id, "s-2")
    assert engine.store.get(HISTORY, error.history_id) is not None
    assert engine.students.get("s-2").standing == Standing.ADEQUATE
    assert "s-2" in engine.groups.get(group.id).member_ids

    # Retrying only the roster removal completes the discharge
    assert engine.groups.remove_member(group.id, "s-2") is True
    assert engine.groups.get(group.id).member_ids == ["s-3"]
    assert len(engine.discharge.history(student_id="s-2")) == 1


def test_student_goes_through_reinforcement_and_back(engine, students):
    assert engine.students.get("s-1").standing == Standing.ADEQUATE
    engine.evaluations.record("s-1", "p1", "not_achieved", "b1")
    assert engine.students.get("s-1").standing == Standing.NEEDS_REINFORCEMENT

    group = engine.groups.create("Reforço de Leitura", "Português", ["s-1"], start_date=date(2024, 3, 1))
    engine.attendance.record_attendance(group.id, date(2024, 3, 5), ["s-1"])
    engine.attendance.record_attendance(group.id, date(2024, 3, 12), [])
    assert engine.attendance.attendance_rate(group.id, "s-1") == 50

    engine.discharge.discharge(group.id, "s-1", "achieved")

    assert engine.students.get("s-1").standing == Standing.ADEQUATE
    assert engine.groups.get(group.id).member_ids == []
    entries = engine.discharge.history(student_id="s-1")
    assert len(entries) == 1
    assert entries[0].group_name == "Reforço de Leitura"
