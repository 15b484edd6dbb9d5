"""
Catalog models - classes, BNCC competencies and staff invites.

These collections carry no engine invariants; they are cached locally and
overwritten wholesale by a resync.
"""

from sqlalchemy import Column, Text, String
from edutracker.database import Base
from edutracker.models.record import RecordMixin


class ClassRoom(RecordMixin, Base):
    """SQLAlchemy model for the classes table."""
    __tablename__ = "classes"

    id = Column(String(64), primary_key=True)
    name = Column(Text, nullable=False)
    grade = Column(Text, nullable=False, default="")
    shift = Column(String(16), nullable=False, default="morning",
                   doc="morning | afternoon")
    teacher_id = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<ClassRoom(id={self.id}, name='{self.name}')>"


class Competency(RecordMixin, Base):
    """SQLAlchemy model for the competencies table (BNCC skills)."""
    __tablename__ = "competencies"

    id = Column(String(64), primary_key=True)
    code = Column(String(16), nullable=True,
                  doc="BNCC code, e.g. EF01LP01")
    name = Column(Text, nullable=False)
    subject = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    grade = Column(Text, nullable=False, default="")

    def __repr__(self):
        return f"<Competency(id={self.id}, code='{self.code}')>"


class TeacherInvite(RecordMixin, Base):
    """SQLAlchemy model for the invites table."""
    __tablename__ = "invites"

    id = Column(String(64), primary_key=True)
    email = Column(Text, nullable=False)
    role = Column(String(16), nullable=False, default="teacher")
    status = Column(String(16), nullable=False, default="pending")
    invite_link = Column(Text, nullable=False, default="")

    def __repr__(self):
        return f"<TeacherInvite(id={self.id}, email='{self.email}', status='{self.status}')>"
