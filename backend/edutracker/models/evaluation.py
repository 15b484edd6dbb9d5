"""
Evaluation model - flat mirror of the evaluations embedded in student rows.

Kept as its own collection so the remote store receives one row per
evaluation. The (student, competency, period) triple is unique.
"""

from sqlalchemy import Column, Text, Float, DateTime, String, UniqueConstraint
from edutracker.database import Base
from edutracker.models.record import RecordMixin


class Evaluation(RecordMixin, Base):
    """SQLAlchemy model for the evaluations table."""
    __tablename__ = "evaluations"

    id = Column(String(64), primary_key=True,
                doc="Unique evaluation identifier")
    student_id = Column(String(64), nullable=False,
                        doc="Evaluated student")
    competency_id = Column(String(64), nullable=False,
                           doc="Assessed competency, or 'discharge' for final evaluations")
    level = Column(String(32), nullable=False,
                   doc="Achievement level: not_achieved | developing | achieved | exceeded")
    period = Column(String(8), nullable=False,
                    doc="Bimester tag: b1 | b2 | b3 | b4")
    kind = Column(String(32), nullable=False, default="other",
                  doc="Assessment kind: test | project | participation | exercise | other")
    date = Column(DateTime(timezone=True), nullable=False,
                  doc="When the evaluation was submitted")
    score = Column(Float, nullable=True,
                   doc="Optional numeric score")
    max_score = Column(Float, nullable=True,
                       doc="Maximum score declared by the evaluator")
    feedback = Column(Text, nullable=True,
                      doc="Optional free-text feedback")

    __table_args__ = (
        UniqueConstraint("student_id", "competency_id", "period", name="uq_evaluations_triple"),
    )

    def __repr__(self):
        return f"<Evaluation(id={self.id}, student={self.student_id}, competency={self.competency_id}, level='{self.level}')>"
