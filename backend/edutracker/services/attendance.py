"""
Attendance Tracker - the call diary of each reinforcement group.

One record per (group, calendar date); saving the same date again replaces
the earlier record. Only current members can be marked present. Records
that mention since-discharged students stay as historical facts.

Attendance rate per student:
    rate = round(100 * sessions_present / sessions_recorded)
    rate = 100 when no session has been recorded yet
A rate below 50 raises the dropout alert.
"""

import math
from datetime import date
from typing import Dict, List, Optional

from edutracker.errors import StaleReferenceError
from edutracker.schemas import AttendanceRecord
from edutracker.services.reinforcement import ReinforcementGroupManager
from edutracker.store import RecordStore, ATTENDANCE
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("attendance")

DROPOUT_ALERT_THRESHOLD = 50


def attendance_record_id(group_id: str, day: date) -> str:
    return "att-{}-{}".format(group_id, day.isoformat())


def rate_from_records(records: List[AttendanceRecord], student_id: str) -> int:
    if not records:
        return 100
    present = sum(1 for r in records if student_id in r.present_ids)
    # Half-up rounding; Python's round() would send 62.5 to 62
    return int(math.floor(present * 100 / len(records) + 0.5))


class AttendanceTracker:
    """Records sessions and computes attendance rates for a group."""

    def __init__(self, store: RecordStore, groups: ReinforcementGroupManager):
        self.store = store
        self.groups = groups

    def record_attendance(self, group_id: str, day: date, present_ids: List[str]) -> AttendanceRecord:
        """
        Save who was present on a date, replacing any record for that date.

        Raises:
            NotFoundError: the group does not exist
            StaleReferenceError: a present id is not a current member
        """
        group = self.groups.get(group_id)

        present = list(dict.fromkeys(present_ids or []))
        strangers = [sid for sid in present if sid not in group.member_ids]
        if strangers:
            log_with_context(logger, "WARNING", "Rejected attendance naming non-members",
                             context={"group_id": group_id},
                             extra_data={"date": day.isoformat(), "student_ids": strangers})
            raise StaleReferenceError(group_id, strangers)

        record_id = attendance_record_id(group.id, day)
        replaced = self.store.get(ATTENDANCE, record_id) is not None
        record = AttendanceRecord(id=record_id, group_id=group.id, date=day, present_ids=present)
        self.store.put(ATTENDANCE, record.to_record())

        log_with_context(logger, "INFO",
            "Attendance {} for {}: {}/{} present".format(
                "replaced" if replaced else "recorded", day.isoformat(), len(present), len(group.member_ids)),
            context={"group_id": group.id, "attendance_id": record_id})
        return record

    def history(self, group_id: str) -> List[AttendanceRecord]:
        """All records of the group, newest first."""
        records = [AttendanceRecord.model_validate(r) for r in self.store.list(ATTENDANCE, group_id=group_id)]
        return sorted(records, key=lambda r: r.date, reverse=True)

    def record_for(self, group_id: str, day: date) -> Optional[AttendanceRecord]:
        record = self.store.get(ATTENDANCE, attendance_record_id(group_id, day))
        return AttendanceRecord.model_validate(record) if record else None

    def attendance_rate(self, group_id: str, student_id: str) -> int:
        """Integer percentage in [0, 100]; 100 before any session is recorded."""
        return rate_from_records(self.history(group_id), student_id)

    def member_rates(self, group_id: str) -> Dict[str, int]:
        """Attendance rate of every current member."""
        group = self.groups.get(group_id)
        records = self.history(group.id)
        return {sid: rate_from_records(records, sid) for sid in group.member_ids}

    def at_risk(self, group_id: str) -> List[str]:
        """Current members whose rate is below the dropout alert threshold."""
        return [sid for sid, rate in self.member_rates(group_id).items() if rate < DROPOUT_ALERT_THRESHOLD]
