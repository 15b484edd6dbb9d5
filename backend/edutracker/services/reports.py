"""Dashboard summary - counts of students per standing and completed interventions."""

from typing import Optional

from edutracker.schemas import Standing, StudentRecord
from edutracker.store import RecordStore, STUDENTS, CLASSES, GROUPS, HISTORY


def standing_summary(store: RecordStore, class_id: Optional[str] = None) -> dict:
    students = [StudentRecord.model_validate(r) for r in store.list(STUDENTS)]
    if class_id:
        students = [s for s in students if s.class_id == class_id]

    counts = {standing.value: 0 for standing in Standing}
    for student in students:
        counts[student.standing.value] += 1

    total = len(students)
    adequate = counts[Standing.ADEQUATE.value]
    return {
        "total_students": total,
        "classes": len(store.list(CLASSES)),
        "by_standing": counts,
        "percent_adequate": round(adequate * 100 / total) if total else 0,
        "active_groups": len(store.list(GROUPS)),
        "completed_interventions": len(store.list(HISTORY)),
    }
