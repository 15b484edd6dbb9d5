"""
Reinforcement Group Manager - remedial groups and their rosters.

Groups are bound to a roster of student ids, a subject, and a schedule.
Roster rules:
- A group cannot be created or edited into an empty roster
- Member ids are unique and must name enrolled students
- Members leave through discharge or an explicit roster edit

Deleting a group also deletes its attendance diary. Discharge history
entries are kept.
"""

import uuid
from datetime import date
from typing import List, Optional
from pydantic import ValidationError as SchemaError

from edutracker.errors import ValidationError, NotFoundError
from edutracker.schemas import ReinforcementGroupRecord, StudentRecord, Standing
from edutracker.store import RecordStore, GROUPS, STUDENTS, ATTENDANCE
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("reinforcement")

EDITABLE_FIELDS = ("name", "subject", "member_ids", "competency_ids", "schedule",
                   "start_date", "expected_end_date")


class ReinforcementGroupManager:
    """Creates, edits and deletes reinforcement groups."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _validate(self, group: ReinforcementGroupRecord):
        if not group.name.strip():
            raise ValidationError("Group name is required")
        if not group.subject.strip():
            raise ValidationError("Group subject is required")
        if not group.member_ids:
            raise ValidationError("A reinforcement group needs at least one student")
        duplicates = sorted({sid for sid in group.member_ids if group.member_ids.count(sid) > 1})
        if duplicates:
            raise ValidationError("Duplicate member ids: {}".format(", ".join(duplicates)))
        unknown = [sid for sid in group.member_ids if self.store.get(STUDENTS, sid) is None]
        if unknown:
            raise ValidationError("Unknown student ids: {}".format(", ".join(unknown)))
        if group.expected_end_date and group.expected_end_date < group.start_date:
            raise ValidationError("Expected end date {} is before the start date {}".format(
                group.expected_end_date, group.start_date))

    def create(self, name: str, subject: str, member_ids: List[str], schedule: str = "",
               start_date: date = None, expected_end_date: date = None,
               competency_ids: List[str] = None) -> ReinforcementGroupRecord:
        """
        Create a group with a generated identifier.

        Raises:
            ValidationError: empty roster, duplicate or unknown members, blank
                name or subject, end date before start date
        """
        group = ReinforcementGroupRecord(
            id="grp-{}".format(uuid.uuid4()),
            name=(name or "").strip(),
            subject=(subject or "").strip(),
            member_ids=list(member_ids or []),
            competency_ids=list(competency_ids or []),
            schedule=(schedule or "").strip(),
            start_date=start_date or date.today(),
            expected_end_date=expected_end_date,
        )
        self._validate(group)
        self.store.put(GROUPS, group.to_record())

        log_with_context(logger, "INFO", "Created reinforcement group '{}'".format(group.name),
                         context={"group_id": group.id},
                         extra_data={"subject": group.subject, "members": len(group.member_ids)})
        return group

    def get(self, group_id: str) -> ReinforcementGroupRecord:
        record = self.store.get(GROUPS, group_id)
        if record is None:
            raise NotFoundError(GROUPS, group_id)
        return ReinforcementGroupRecord.model_validate(record)

    def list_groups(self) -> List[ReinforcementGroupRecord]:
        groups = [ReinforcementGroupRecord.model_validate(r) for r in self.store.list(GROUPS)]
        return sorted(groups, key=lambda g: (g.start_date, g.name))

    def edit(self, group_id: str, **changes) -> ReinforcementGroupRecord:
        """Apply a partial update. The merged group is validated like a new one."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("Fields cannot be edited: {}".format(", ".join(sorted(unknown))))

        current = self.get(group_id)
        merged = current.model_dump()
        merged.update(changes)
        try:
            group = ReinforcementGroupRecord.model_validate(merged)
        except SchemaError as e:
            raise ValidationError("Invalid group fields: {}".format(
                ", ".join(str(err["loc"][0]) for err in e.errors()))) from e
        self._validate(group)
        self.store.put(GROUPS, group.to_record())

        removed = [sid for sid in current.member_ids if sid not in group.member_ids]
        log_with_context(logger, "INFO", "Edited reinforcement group '{}'".format(group.name),
                         context={"group_id": group.id},
                         extra_data={"fields": sorted(changes), "removed_members": removed})
        return group

    def delete(self, group_id: str) -> int:
        """Delete the group and its attendance records. Returns the number of records removed."""
        group = self.get(group_id)
        attendance = self.store.list(ATTENDANCE, group_id=group.id)
        for record in attendance:
            self.store.delete(ATTENDANCE, record["id"])
        self.store.delete(GROUPS, group.id)

        log_with_context(logger, "INFO", "Deleted reinforcement group '{}'".format(group.name),
                         context={"group_id": group.id},
                         extra_data={"attendance_records_removed": len(attendance)})
        return len(attendance)

    def remove_member(self, group_id: str, student_id: str) -> bool:
        """
        Drop a student from the roster. Idempotent: removing an absent id is a
        no-op that writes nothing. Returns True when the roster changed.
        """
        group = self.get(group_id)
        if student_id not in group.member_ids:
            log_with_context(logger, "DEBUG", "Student already absent from roster",
                             context={"group_id": group_id, "student_id": student_id})
            return False
        group.member_ids = [sid for sid in group.member_ids if sid != student_id]
        self.store.put(GROUPS, group.to_record())
        log_with_context(logger, "INFO", "Removed student from group '{}'".format(group.name),
                         context={"group_id": group_id, "student_id": student_id},
                         extra_data={"members_left": len(group.member_ids)})
        return True

    def candidates(self, class_id: Optional[str] = None) -> List[StudentRecord]:
        """Students currently flagged as needing reinforcement."""
        students = [StudentRecord.model_validate(r)
                    for r in self.store.list(STUDENTS, standing=Standing.NEEDS_REINFORCEMENT.value)]
        if class_id:
            students = [s for s in students if s.class_id == class_id]
        return sorted(students, key=lambda s: s.name)
