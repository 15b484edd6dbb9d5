"""
Reinforcement models - remedial groups, their attendance diary, and the
append-only discharge ledger.

Groups reference students by id only. Attendance is keyed by
(group, calendar date) through a derived identifier.
"""

from sqlalchemy import Column, Text, Date, DateTime, String, Index
from edutracker.database import Base
from edutracker.models.record import RecordMixin


class ReinforcementGroup(RecordMixin, Base):
    """
    SQLAlchemy model for the reinforcement_groups table.

    Membership only shrinks through discharge or an explicit roster edit.
    """
    __tablename__ = "reinforcement_groups"
    JSON_FIELDS = ("member_ids", "competency_ids")

    id = Column(String(64), primary_key=True,
                doc="Unique group identifier")
    name = Column(Text, nullable=False,
                  doc="Display name, e.g. 'Alfabetização Nível I'")
    subject = Column(Text, nullable=False,
                     doc="Target subject")
    member_ids = Column(Text, nullable=False, default="[]",
                        doc="Member student ids as a JSON list")
    competency_ids = Column(Text, nullable=False, default="[]",
                            doc="Targeted competency ids as a JSON list")
    schedule = Column(Text, nullable=False, default="",
                      doc="Free-form schedule descriptor")
    start_date = Column(Date, nullable=False,
                        doc="First day of the intervention")
    expected_end_date = Column(Date, nullable=True,
                               doc="Expected exit date")

    def __repr__(self):
        return f"<ReinforcementGroup(id={self.id}, name='{self.name}', subject='{self.subject}')>"


class Attendance(RecordMixin, Base):
    """SQLAlchemy model for the attendance table (one row per group and date)."""
    __tablename__ = "attendance"
    JSON_FIELDS = ("present_ids",)

    id = Column(String(128), primary_key=True,
                doc="Derived identifier: att-{group_id}-{date}")
    group_id = Column(String(64), nullable=False,
                      doc="Group this session belongs to")
    date = Column(Date, nullable=False,
                  doc="Calendar date of the session")
    present_ids = Column(Text, nullable=False, default="[]",
                         doc="Student ids marked present, as a JSON list")

    __table_args__ = (
        Index("ix_attendance_group_id", "group_id"),
    )

    def __repr__(self):
        return f"<Attendance(group={self.group_id}, date={self.date})>"


class ReinforcementHistory(RecordMixin, Base):
    """
    SQLAlchemy model for the reinforcement_history table.

    Student and group names are denormalized snapshots taken at discharge.
    """
    __tablename__ = "reinforcement_history"

    id = Column(String(64), primary_key=True,
                doc="Unique ledger entry identifier")
    student_id = Column(String(64), nullable=False,
                        doc="Discharged student")
    student_name = Column(Text, nullable=False,
                          doc="Student name at discharge time")
    group_name = Column(Text, nullable=False,
                        doc="Originating group name")
    subject = Column(Text, nullable=False,
                     doc="Group subject")
    start_date = Column(Date, nullable=False,
                        doc="Group start date")
    completed_at = Column(DateTime(timezone=True), nullable=False,
                          doc="Discharge timestamp")

    __table_args__ = (
        Index("ix_reinforcement_history_student_id", "student_id"),
    )

    def __repr__(self):
        return f"<ReinforcementHistory(student={self.student_id}, group='{self.group_name}')>"
