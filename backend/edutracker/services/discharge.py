"""
Discharge Workflow - a student's exit from a reinforcement group.

Steps, in this order:
1. Build a final evaluation against the "discharge" competency
2. Set the student's standing from the final level
3. Upsert the evaluation into the student's history and persist the student
4. Append a reinforcement history entry (denormalized snapshot)
5. Remove the student from the group roster and persist the group

The student update is durable before the roster changes. If step 5 fails,
DischargeIncompleteError tells the caller to retry the roster removal only;
`ReinforcementGroupManager.remove_member` is idempotent.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from edutracker.errors import ValidationError, DischargeIncompleteError
from edutracker.schemas import (
    AchievementLevel, AssessmentKind, Bimester, EvaluationRecord, ReinforcementHistoryRecord
)
from edutracker.services.evaluations import (
    EvaluationRecorder, apply_evaluation, coerce_enum, persist_evaluation, validate_score
)
from edutracker.services.reinforcement import ReinforcementGroupManager
from edutracker.services.standing import discharge_standing
from edutracker.store import RecordStore, HISTORY
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("discharge")

DISCHARGE_COMPETENCY_ID = "discharge"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DischargeWorkflow:
    """Runs the multi-step discharge of one student from one group."""

    def __init__(self, store: RecordStore, recorder: EvaluationRecorder,
                 groups: ReinforcementGroupManager, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.recorder = recorder
        self.groups = groups
        self._clock = clock

    def discharge(self, group_id: str, student_id: str, final_level,
                  final_score: float = None, max_score: float = None,
                  feedback: str = None) -> ReinforcementHistoryRecord:
        """
        Discharge a student from a group.

        The core does not detect a repeated discharge: each call appends its
        own history entry, and calling it for a student no longer in the
        roster does not error.

        Raises:
            ValidationError: bad level or score
            NotFoundError: unknown group or student
            DischargeIncompleteError: steps 1-4 succeeded, roster removal failed
        """
        start_time = time.time()

        if not group_id or not student_id:
            raise ValidationError("group_id and student_id are required")
        final_level = coerce_enum(AchievementLevel, final_level, "final_level")
        max_score = validate_score(final_score, max_score)

        group = self.groups.get(group_id)
        student = self.recorder.load_student(student_id)
        completed_at = self._clock()

        # Steps 1-3: final evaluation, standing, durable student write
        evaluation = EvaluationRecord(
            id="ev-{}".format(uuid.uuid4()),
            student_id=student.id,
            competency_id=DISCHARGE_COMPETENCY_ID,
            level=final_level,
            period=Bimester.for_date(completed_at.date()),
            kind=AssessmentKind.OTHER,
            date=completed_at,
            score=final_score,
            max_score=max_score,
            feedback=feedback.strip() if feedback and feedback.strip() else None,
        )
        apply_evaluation(student, evaluation)
        student.standing = discharge_standing(final_level)
        persist_evaluation(self.store, student, evaluation)

        # Step 4: ledger entry
        entry = ReinforcementHistoryRecord(
            id="hist-{}".format(uuid.uuid4()),
            student_id=student.id,
            student_name=student.name,
            group_name=group.name,
            subject=group.subject,
            start_date=group.start_date,
            completed_at=completed_at,
        )
        self.store.put(HISTORY, entry.to_record())

        context = {"group_id": group.id, "student_id": student.id, "history_id": entry.id}

        # Step 5: roster removal
        try:
            self.groups.remove_member(group.id, student.id)
        except Exception as e:
            log_with_context(logger, "ERROR",
                "Discharge incomplete, roster removal failed: {}".format(e), context=context)
            raise DischargeIncompleteError(group.id, student.id, entry.id) from e

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "Discharged {} from '{}' with {} → {}".format(
                student.name, group.name, final_level.value, student.standing.value),
            context=context,
            extra_data={"duration_ms": round(duration_ms, 2), "final_score": final_score})
        return entry

    def history(self, student_id: str = None) -> List[ReinforcementHistoryRecord]:
        """Discharge ledger, newest first, optionally for one student."""
        where = {"student_id": student_id} if student_id else {}
        entries = [ReinforcementHistoryRecord.model_validate(r) for r in self.store.list(HISTORY, **where)]
        return sorted(entries, key=lambda e: e.completed_at, reverse=True)
