"""
Student model - a student enrolled in a class and tracked against competencies.

The evaluation history is embedded in the student row as a JSON list,
ordered by submission, holding at most one entry per
(competency, bimester).
"""

from sqlalchemy import Column, Text, Integer, String, Index
from edutracker.database import Base
from edutracker.models.record import RecordMixin


class Student(RecordMixin, Base):
    """
    SQLAlchemy model for the students table.

    `standing` is derived from the most recent accepted evaluation and
    starts as "adequate" at enrollment.
    """
    __tablename__ = "students"
    JSON_FIELDS = ("evaluations",)

    id = Column(String(64), primary_key=True,
                doc="Unique student identifier")
    name = Column(Text, nullable=False,
                  doc="Student's full name")
    age = Column(Integer, nullable=True,
                 doc="Age in years")
    grade = Column(Text, nullable=False, default="",
                   doc="School year, e.g. '1º'")
    class_id = Column(String(64), nullable=True,
                      doc="Reference to the student's class (not enforced)")
    standing = Column(String(32), nullable=False, default="adequate",
                      doc="Aggregate standing: adequate | developing | needs_reinforcement")
    evaluations = Column(Text, nullable=False, default="[]",
                         doc="Evaluation history as a JSON list")

    __table_args__ = (
        Index("ix_students_class_id", "class_id"),
        Index("ix_students_standing", "standing"),
    )

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.name}', standing='{self.standing}')>"
