from datetime import date

import pytest

from edutracker.errors import ValidationError, NotFoundError
from edutracker.store import ATTENDANCE, GROUPS


def make_group(engine, members=("s-2", "s-3"), **kwargs):
    return engine.groups.create(
        kwargs.pop("name", "Reforço de Leitura"), kwargs.pop("subject", "Português"),
        list(members), schedule="Terças 14h", start_date=date(2024, 3, 1), **kwargs
    )


def test_create_and_get(engine, students):
    group = make_group(engine, competency_ids=["p1"])
    assert group.id.startswith("grp-")
    stored = engine.groups.get(group.id)
    assert stored.member_ids == ["s-2", "s-3"]
    assert stored.competency_ids == ["p1"]
    assert stored.start_date == date(2024, 3, 1)


@pytest.mark.parametrize("members", [[], ["s-2", "s-2"], ["s-2", "s-404"]])
def test_create_rejects_bad_roster(engine, students, members):
    with pytest.raises(ValidationError):
        make_group(engine, members=members)
    assert engine.groups.list_groups() == []


def test_create_rejects_blank_name_and_inverted_dates(engine, students):
    with pytest.raises(ValidationError):
        make_group(engine, name="  ")
    with pytest.raises(ValidationError):
        make_group(engine, expected_end_date=date(2024, 2, 1))


def test_edit_validates_merged_group(engine, students):
    group = make_group(engine)
    edited = engine.groups.edit(group.id, member_ids=["s-2"], schedule="Quintas 10h")
    assert edited.member_ids == ["s-2"]
    assert edited.name == group.name

    with pytest.raises(ValidationError):
        engine.groups.edit(group.id, member_ids=[])
    with pytest.raises(ValidationError):
        engine.groups.edit(group.id, id="grp-other")
    with pytest.raises(ValidationError):
        engine.groups.edit(group.id, name=None)
    assert engine.groups.get(group.id).member_ids == ["s-2"]


def test_delete_cascades_attendance(engine, students):
    group = make_group(engine)
    other = make_group(engine, name="Reforço de Matemática", subject="Matemática")
    engine.attendance.record_attendance(group.id, date(2024, 3, 5), ["s-2"])
    engine.attendance.record_attendance(group.id, date(2024, 3, 12), [])
    engine.attendance.record_attendance(other.id, date(2024, 3, 5), ["s-3"])

    assert engine.groups.delete(group.id) == 2
    assert engine.store.get(GROUPS, group.id) is None
    assert [r["group_id"] for r in engine.store.list(ATTENDANCE)] == [other.id]
    with pytest.raises(NotFoundError):
        engine.groups.delete(group.id)


def test_remove_member_is_idempotent(engine, students):
    group = make_group(engine)
    assert engine.groups.remove_member(group.id, "s-2") is True
    assert engine.groups.remove_member(group.id, "s-2") is False
    assert engine.groups.get(group.id).member_ids == ["s-3"]

    # The last member can leave; the group stays with an empty roster
    assert engine.groups.remove_member(group.id, "s-3") is True
    assert engine.groups.get(group.id).member_ids == []


def test_candidates(engine, students):
    assert [s.id for s in engine.groups.candidates()] == ["s-2", "s-3"]
    assert [s.id for s in engine.groups.candidates(class_id="c-2")] == ["s-3"]
