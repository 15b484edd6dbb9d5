"""
Students API routes - enrollment, lookup and evaluation history.

Provides endpoints for:
- Enrolling a student (standing starts as adequate)
- Listing students by class or standing
- Viewing a student with its evaluations
- Removing a student
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from edutracker.core import ProgressEngine, get_engine
from edutracker.labels import label
from edutracker.schemas import Bimester, Standing, StudentRecord
from edutracker.logging_config import get_logger

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class EnrollRequest(BaseModel):
    """Schema for enrolling a student."""
    name: str
    age: Optional[int] = Field(None, description="Age in years")
    grade: str = ""
    class_id: Optional[str] = None


def serialize_student(student: StudentRecord, include_evaluations: bool = True) -> dict:
    """Serialize a StudentRecord for API response, with display labels."""
    result = student.to_record()
    result["standing_label"] = label(student.standing)
    result["evaluation_count"] = len(student.evaluations)
    if not include_evaluations:
        result.pop("evaluations")
    return result


@router.post("/api/students", status_code=201)
def enroll_student(body: EnrollRequest, engine: ProgressEngine = Depends(get_engine)):
    """Enroll a new student."""
    student = engine.students.enroll(body.name, age=body.age, grade=body.grade, class_id=body.class_id)
    return serialize_student(student)


@router.get("/api/students")
def list_students(
    class_id: Optional[str] = Query(None, description="Filter by class ID"),
    standing: Optional[Standing] = Query(None, description="Filter by standing"),
    engine: ProgressEngine = Depends(get_engine)
):
    """List students ordered by name, without their evaluation history."""
    students = engine.students.list_students(class_id=class_id, standing=standing)
    return {
        "data": [serialize_student(s, include_evaluations=False) for s in students],
        "total": len(students)
    }


@router.get("/api/students/{student_id}")
def get_student(student_id: str, engine: ProgressEngine = Depends(get_engine)):
    return serialize_student(engine.students.get(student_id))


@router.get("/api/students/{student_id}/evaluations")
def student_evaluations(
    student_id: str,
    competency_id: Optional[str] = Query(None, description="Filter by competency ID"),
    period: Optional[Bimester] = Query(None, description="Filter by bimester"),
    engine: ProgressEngine = Depends(get_engine)
):
    """Evaluation history of a student, in recording order."""
    evaluations = engine.evaluations.history(student_id, competency_id=competency_id, period=period)
    return {"data": [e.to_record() for e in evaluations], "total": len(evaluations)}


@router.delete("/api/students/{student_id}", status_code=204)
def delete_student(student_id: str, engine: ProgressEngine = Depends(get_engine)):
    engine.students.delete(student_id)
