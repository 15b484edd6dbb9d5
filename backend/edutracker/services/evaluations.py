"""
Evaluation Recorder - stores competency assessment results.

Implements the recording rules:
1. Validate identifiers and score bounds before touching the store
2. At most one evaluation per (student, competency, bimester): a second
   submission replaces the first, it is never a conflict
3. The accepted evaluation's level sets the student's standing
4. The student (with its embedded history) and the flat evaluation row
   are written through the record store
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from edutracker.errors import ValidationError, NotFoundError
from edutracker.schemas import (
    AchievementLevel, AssessmentKind, Bimester, EvaluationRecord, StudentRecord
)
from edutracker.services.standing import derive_standing
from edutracker.store import RecordStore, STUDENTS, EVALUATIONS
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("evaluation")

# Maximum assumed when a score arrives without a declared maximum
DEFAULT_MAX_SCORE = 10.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_enum(enum_cls, value, field: str):
    """Convert a raw value to an enum member, rejecting unknown values."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError("Invalid {} '{}' (expected one of: {})".format(field, value, allowed)) from None


def validate_score(score: Optional[float], max_score: Optional[float]) -> Optional[float]:
    """
    Check a score against its declared maximum.

    Returns the maximum to store: the declared one, the default when only a
    score was given, or None when neither was given.
    """
    if max_score is not None and max_score <= 0:
        raise ValidationError("Maximum score must be positive, got {}".format(max_score))
    if score is None:
        return max_score
    if max_score is None:
        max_score = DEFAULT_MAX_SCORE
    if score < 0:
        raise ValidationError("Score cannot be negative, got {}".format(score))
    if score > max_score:
        raise ValidationError("Score {} exceeds the maximum of {}".format(score, max_score))
    return max_score


def apply_evaluation(student: StudentRecord, evaluation: EvaluationRecord) -> Optional[EvaluationRecord]:
    """
    Upsert an evaluation into the student's history.

    Replaces the entry with the same (competency, period) in place, or
    appends. Returns the replaced evaluation, if any.
    """
    for index, existing in enumerate(student.evaluations):
        if existing.competency_id == evaluation.competency_id and existing.period == evaluation.period:
            student.evaluations[index] = evaluation
            return existing
    student.evaluations.append(evaluation)
    return None


def persist_evaluation(store: RecordStore, student: StudentRecord, evaluation: EvaluationRecord):
    """
    Write the student first, then mirror the evaluation row, removing any
    other row for the same (student, competency, period).
    """
    store.put(STUDENTS, student.to_record())
    stale_rows = store.list(
        EVALUATIONS,
        student_id=evaluation.student_id,
        competency_id=evaluation.competency_id,
        period=evaluation.period.value,
    )
    for row in stale_rows:
        if row["id"] != evaluation.id:
            store.delete(EVALUATIONS, row["id"])
    store.put(EVALUATIONS, evaluation.to_record())


def check_evaluation_id(store: RecordStore, student: StudentRecord, evaluation_id: str,
                        competency_id: str, period: Bimester):
    """
    Reject a caller-supplied id already used by another evaluation.

    Reusing the id of the evaluation being replaced, same student,
    competency and period, is allowed.
    """
    owners = []
    row = store.get(EVALUATIONS, evaluation_id)
    if row is not None:
        owners.append((row["student_id"], row["competency_id"], row["period"]))
    owners.extend(
        (student.id, e.competency_id, e.period.value)
        for e in student.evaluations if e.id == evaluation_id
    )
    if any(owner != (student.id, competency_id, period.value) for owner in owners):
        raise ValidationError("Evaluation id '{}' already belongs to another evaluation".format(evaluation_id))


class EvaluationRecorder:
    """Accepts assessment results and keeps student standing in step with them."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self._clock = clock

    def load_student(self, student_id: str) -> StudentRecord:
        record = self.store.get(STUDENTS, student_id)
        if record is None:
            raise NotFoundError(STUDENTS, student_id)
        return StudentRecord.model_validate(record)

    def record(self, student_id: str, competency_id: str, level, period,
               kind=AssessmentKind.OTHER, score: float = None, max_score: float = None,
               feedback: str = None, evaluation_id: str = None) -> EvaluationRecord:
        """
        Record an evaluation and update the student's standing.

        Args:
            student_id: Evaluated student
            competency_id: Assessed competency
            level: AchievementLevel (member or raw value)
            period: Bimester (member or raw value)
            kind: AssessmentKind (member or raw value)
            score: Optional numeric score, bounded by max_score
            max_score: Declared maximum; defaults to 10 when a score is given
            feedback: Optional free text
            evaluation_id: Optional identifier; generated when omitted

        Returns:
            The stored EvaluationRecord

        Raises:
            ValidationError: missing identifiers, unknown enum values, bad score,
                an evaluation_id owned by another evaluation
            NotFoundError: the student does not exist
        """
        start_time = time.time()

        if not student_id or not str(student_id).strip():
            raise ValidationError("student_id is required")
        if not competency_id or not str(competency_id).strip():
            raise ValidationError("competency_id is required")
        level = coerce_enum(AchievementLevel, level, "level")
        period = coerce_enum(Bimester, period, "period")
        kind = coerce_enum(AssessmentKind, kind, "kind")
        max_score = validate_score(score, max_score)

        student = self.load_student(student_id)
        if evaluation_id:
            check_evaluation_id(self.store, student, evaluation_id, competency_id, period)

        evaluation = EvaluationRecord(
            id=evaluation_id or "ev-{}".format(uuid.uuid4()),
            student_id=student.id,
            competency_id=competency_id,
            level=level,
            period=period,
            kind=kind,
            date=self._clock(),
            score=score,
            max_score=max_score,
            feedback=feedback.strip() if feedback and feedback.strip() else None,
        )

        replaced = apply_evaluation(student, evaluation)
        previous_standing = student.standing
        student.standing = derive_standing(level)
        persist_evaluation(self.store, student, evaluation)

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "Evaluation {} for competency {} ({}): standing {} → {}".format(
                "replaced" if replaced else "recorded", competency_id, period.value,
                previous_standing.value, student.standing.value),
            context={
                "student_id": student.id,
                "evaluation_id": evaluation.id,
                "competency_id": competency_id,
            },
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "level": level.value,
                "replaced_evaluation_id": replaced.id if replaced else None,
            })
        return evaluation

    def history(self, student_id: str, competency_id: str = None, period=None) -> List[EvaluationRecord]:
        """Evaluations of a student in recording order, optionally filtered."""
        student = self.load_student(student_id)
        evaluations = student.evaluations
        if competency_id:
            evaluations = [e for e in evaluations if e.competency_id == competency_id]
        if period:
            period = coerce_enum(Bimester, period, "period")
            evaluations = [e for e in evaluations if e.period == period]
        return evaluations
