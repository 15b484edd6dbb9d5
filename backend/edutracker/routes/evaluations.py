"""
Evaluations API routes - recording assessment results.

Recording an evaluation updates the student's standing from the level of
that evaluation alone.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from edutracker.core import ProgressEngine, get_engine
from edutracker.labels import label
from edutracker.schemas import AchievementLevel, AssessmentKind
from edutracker.services.standing import derive_standing
from edutracker.logging_config import get_logger

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class EvaluationRequest(BaseModel):
    """
    Schema for recording an evaluation.

    Enum fields are plain strings here so that unknown values are reported
    by the recorder with a 400 rather than a schema error.
    """
    id: Optional[str] = None
    student_id: str
    competency_id: str
    level: str
    period: str
    kind: str = AssessmentKind.OTHER.value
    score: Optional[float] = None
    max_score: Optional[float] = None
    feedback: Optional[str] = None


@router.post("/api/evaluations", status_code=201)
def record_evaluation(body: EvaluationRequest, engine: ProgressEngine = Depends(get_engine)):
    """
    Record an evaluation. A second evaluation for the same competency and
    bimester replaces the first.
    """
    evaluation = engine.evaluations.record(
        body.student_id, body.competency_id, body.level, body.period,
        kind=body.kind, score=body.score, max_score=body.max_score,
        feedback=body.feedback, evaluation_id=body.id,
    )
    student = engine.students.get(body.student_id)
    return {
        "evaluation": evaluation.to_record(),
        "standing": student.standing.value,
        "standing_label": label(student.standing),
    }


@router.get("/api/standing/preview")
def preview_standing(
    level: AchievementLevel = Query(..., description="Achievement level to evaluate")
):
    """Standing a student would get from an evaluation at this level."""
    standing = derive_standing(level)
    return {
        "level": level.value,
        "standing": standing.value,
        "standing_label": label(standing),
    }
