"""Student enrollment - creates students with the default standing."""

import uuid
from typing import List, Optional

from edutracker.errors import ValidationError, NotFoundError
from edutracker.schemas import StudentRecord, Standing
from edutracker.store import RecordStore, STUDENTS
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("db")


class StudentRoster:
    def __init__(self, store: RecordStore):
        self.store = store

    def enroll(self, name: str, age: int = None, grade: str = "", class_id: str = None) -> StudentRecord:
        if not name or not name.strip():
            raise ValidationError("Student name is required")
        if age is not None and age <= 0:
            raise ValidationError("Age must be positive, got {}".format(age))
        student = StudentRecord(
            id="s-{}".format(uuid.uuid4()),
            name=name.strip(),
            age=age,
            grade=grade or "",
            class_id=class_id,
            standing=Standing.ADEQUATE,
            evaluations=[],
        )
        self.store.put(STUDENTS, student.to_record())
        log_with_context(logger, "INFO", "Enrolled student: {}".format(student.name),
                         context={"student_id": student.id, "class_id": class_id})
        return student

    def get(self, student_id: str) -> StudentRecord:
        record = self.store.get(STUDENTS, student_id)
        if record is None:
            raise NotFoundError(STUDENTS, student_id)
        return StudentRecord.model_validate(record)

    def list_students(self, class_id: Optional[str] = None, standing=None) -> List[StudentRecord]:
        where = {}
        if class_id:
            where["class_id"] = class_id
        if standing:
            where["standing"] = Standing(standing).value
        students = [StudentRecord.model_validate(r) for r in self.store.list(STUDENTS, **where)]
        return sorted(students, key=lambda s: s.name)

    def delete(self, student_id: str):
        """Remove a student. Evaluation rows and group memberships are left as they are."""
        student = self.get(student_id)
        self.store.delete(STUDENTS, student.id)
        log_with_context(logger, "INFO", "Deleted student: {}".format(student.name),
                         context={"student_id": student.id},
                         extra_data={"orphaned_evaluations": len(student.evaluations)})
