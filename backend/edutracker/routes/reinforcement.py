"""
Reinforcement API routes - groups, attendance and discharge.

Provides endpoints for:
- Group CRUD and the list of candidate students
- Taking attendance and reading per-member attendance rates
- Discharging a student, and retrying the roster removal of a discharge
- The ledger of completed interventions
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from edutracker.core import ProgressEngine, get_engine
from edutracker.labels import label
from edutracker.routes.students import serialize_student
from edutracker.schemas import ReinforcementGroupRecord
from edutracker.services.attendance import DROPOUT_ALERT_THRESHOLD
from edutracker.store import STUDENTS
from edutracker.logging_config import get_logger

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class GroupCreateRequest(BaseModel):
    """Schema for creating a reinforcement group."""
    name: str
    subject: str
    member_ids: List[str]
    competency_ids: List[str] = Field(default_factory=list)
    schedule: str = ""
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None


class GroupUpdateRequest(BaseModel):
    """Schema for a partial group update; only fields sent are changed."""
    name: Optional[str] = None
    subject: Optional[str] = None
    member_ids: Optional[List[str]] = None
    competency_ids: Optional[List[str]] = None
    schedule: Optional[str] = None
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None


class AttendanceRequest(BaseModel):
    """Schema for one session's attendance; absent members are simply not listed."""
    date: date
    present_ids: List[str] = Field(default_factory=list)


class DischargeRequest(BaseModel):
    """Schema for discharging a student from a group."""
    student_id: str
    final_level: str
    final_score: Optional[float] = None
    max_score: Optional[float] = None
    feedback: Optional[str] = None


def serialize_group(group: ReinforcementGroupRecord, engine: ProgressEngine) -> dict:
    """Serialize a group with the names of its members."""
    result = group.to_record()
    members = []
    for student_id in group.member_ids:
        student = engine.store.get(STUDENTS, student_id)
        members.append({"id": student_id, "name": student["name"] if student else None})
    result["members"] = members
    return result


# ── Groups ───────────────────────────────────────────────────

@router.post("/api/reinforcement/groups", status_code=201)
def create_group(body: GroupCreateRequest, engine: ProgressEngine = Depends(get_engine)):
    group = engine.groups.create(
        body.name, body.subject, body.member_ids,
        schedule=body.schedule, start_date=body.start_date,
        expected_end_date=body.expected_end_date, competency_ids=body.competency_ids,
    )
    return serialize_group(group, engine)


@router.get("/api/reinforcement/groups")
def list_groups(engine: ProgressEngine = Depends(get_engine)):
    groups = engine.groups.list_groups()
    return {"data": [serialize_group(g, engine) for g in groups], "total": len(groups)}


@router.get("/api/reinforcement/groups/{group_id}")
def get_group(group_id: str, engine: ProgressEngine = Depends(get_engine)):
    return serialize_group(engine.groups.get(group_id), engine)


@router.patch("/api/reinforcement/groups/{group_id}")
def edit_group(group_id: str, body: GroupUpdateRequest, engine: ProgressEngine = Depends(get_engine)):
    """Edit a group. Members dropped here keep their standing and get no history entry."""
    group = engine.groups.edit(group_id, **body.model_dump(exclude_unset=True))
    return serialize_group(group, engine)


@router.delete("/api/reinforcement/groups/{group_id}")
def delete_group(group_id: str, engine: ProgressEngine = Depends(get_engine)):
    removed = engine.groups.delete(group_id)
    return {"id": group_id, "deleted": True, "attendance_records_removed": removed}


@router.get("/api/reinforcement/candidates")
def list_candidates(
    class_id: Optional[str] = Query(None, description="Filter by class ID"),
    engine: ProgressEngine = Depends(get_engine)
):
    """Students whose standing is needs_reinforcement."""
    students = engine.groups.candidates(class_id=class_id)
    return {
        "data": [serialize_student(s, include_evaluations=False) for s in students],
        "total": len(students)
    }


# ── Attendance ───────────────────────────────────────────────

@router.post("/api/reinforcement/groups/{group_id}/attendance")
def record_attendance(group_id: str, body: AttendanceRequest, engine: ProgressEngine = Depends(get_engine)):
    """Record attendance for a date; recording the same date again replaces it."""
    record = engine.attendance.record_attendance(group_id, body.date, body.present_ids)
    return record.to_record()


@router.get("/api/reinforcement/groups/{group_id}/attendance")
def attendance_overview(group_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Attendance history (newest first), member rates and dropout alerts."""
    history = engine.attendance.history(group_id)
    return {
        "history": [r.to_record() for r in history],
        "rates": engine.attendance.member_rates(group_id),
        "at_risk": engine.attendance.at_risk(group_id),
        "alert_threshold": DROPOUT_ALERT_THRESHOLD,
    }


# ── Discharge ────────────────────────────────────────────────

@router.post("/api/reinforcement/groups/{group_id}/discharge")
def discharge_student(group_id: str, body: DischargeRequest, engine: ProgressEngine = Depends(get_engine)):
    """
    Discharge a student. A 409 response means the student and history were
    saved but the roster still lists the student; retry with the member
    DELETE endpoint.
    """
    entry = engine.discharge.discharge(
        group_id, body.student_id, body.final_level,
        final_score=body.final_score, max_score=body.max_score, feedback=body.feedback,
    )
    student = engine.students.get(body.student_id)
    return {
        "history": entry.to_record(),
        "standing": student.standing.value,
        "standing_label": label(student.standing),
    }


@router.delete("/api/reinforcement/groups/{group_id}/members/{student_id}")
def remove_member(group_id: str, student_id: str, engine: ProgressEngine = Depends(get_engine)):
    """Remove a student from the roster. Safe to repeat."""
    changed = engine.groups.remove_member(group_id, student_id)
    return {"group_id": group_id, "student_id": student_id, "removed": changed}


@router.get("/api/reinforcement/history")
def discharge_history(
    student_id: Optional[str] = Query(None, description="Filter by student ID"),
    engine: ProgressEngine = Depends(get_engine)
):
    entries = engine.discharge.history(student_id=student_id)
    return {"data": [e.to_record() for e in entries], "total": len(entries)}
