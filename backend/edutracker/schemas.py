"""
Domain record schemas.

Every persisted record is a plain JSON-serializable dict. These pydantic
models validate records coming out of the record store and produce the
dicts written back (``model_dump(mode="json")``). Enum values are stable
machine identifiers; human-readable labels live in ``edutracker.labels``.
"""

import enum
import json
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AchievementLevel(str, enum.Enum):
    NOT_ACHIEVED = "not_achieved"
    DEVELOPING = "developing"
    ACHIEVED = "achieved"
    EXCEEDED = "exceeded"


class Standing(str, enum.Enum):
    ADEQUATE = "adequate"
    DEVELOPING = "developing"
    NEEDS_REINFORCEMENT = "needs_reinforcement"


class Bimester(str, enum.Enum):
    B1 = "b1"
    B2 = "b2"
    B3 = "b3"
    B4 = "b4"

    @classmethod
    def for_date(cls, day: date) -> "Bimester":
        """Bimester containing the given day (calendar quarters of the school year)."""
        return list(cls)[(day.month - 1) // 3]


class AssessmentKind(str, enum.Enum):
    TEST = "test"
    PROJECT = "project"
    PARTICIPATION = "participation"
    EXERCISE = "exercise"
    OTHER = "other"


class Shift(str, enum.Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"


class InviteRole(str, enum.Enum):
    TEACHER = "teacher"
    COORDINATOR = "coordinator"
    MANAGER = "manager"


class InviteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Record(BaseModel):
    """Base for stored records; unknown keys from the remote are ignored."""
    model_config = ConfigDict(extra="ignore")

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class EvaluationRecord(Record):
    id: str
    student_id: str
    competency_id: str
    level: AchievementLevel
    period: Bimester
    kind: AssessmentKind = AssessmentKind.OTHER
    date: datetime
    score: Optional[float] = None
    max_score: Optional[float] = None
    feedback: Optional[str] = None


class StudentRecord(Record):
    id: str
    name: str
    age: Optional[int] = None
    grade: str = ""
    class_id: Optional[str] = None
    standing: Standing = Standing.ADEQUATE
    evaluations: List[EvaluationRecord] = Field(default_factory=list)

    @field_validator("evaluations", mode="before")
    @classmethod
    def _decode_evaluations(cls, value):
        # Remote rows may carry the history as a JSON-encoded string
        if isinstance(value, str):
            return json.loads(value) if value else []
        return value if value is not None else []


class ClassRoomRecord(Record):
    id: str
    name: str
    grade: str = ""
    shift: Shift = Shift.MORNING
    teacher_id: Optional[str] = None


class CompetencyRecord(Record):
    id: str
    code: Optional[str] = None
    name: str
    subject: str
    description: str = ""
    grade: str = ""


class ReinforcementGroupRecord(Record):
    id: str
    name: str
    subject: str
    member_ids: List[str] = Field(default_factory=list)
    competency_ids: List[str] = Field(default_factory=list)
    schedule: str = ""
    start_date: date
    expected_end_date: Optional[date] = None


class AttendanceRecord(Record):
    id: str
    group_id: str
    date: date
    present_ids: List[str] = Field(default_factory=list)


class ReinforcementHistoryRecord(Record):
    id: str
    student_id: str
    student_name: str
    group_name: str
    subject: str
    start_date: date
    completed_at: datetime


class TeacherInviteRecord(Record):
    id: str
    email: str
    role: InviteRole = InviteRole.TEACHER
    status: InviteStatus = InviteStatus.PENDING
    invite_link: str = ""


SCHEMAS_BY_COLLECTION = {
    "students": StudentRecord,
    "evaluations": EvaluationRecord,
    "reinforcement_groups": ReinforcementGroupRecord,
    "attendance": AttendanceRecord,
    "reinforcement_history": ReinforcementHistoryRecord,
    "classes": ClassRoomRecord,
    "competencies": CompetencyRecord,
    "invites": TeacherInviteRecord,
}
