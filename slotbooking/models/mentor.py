"""Mentor profile definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from slotbooking.database import Base


class Mentor(Base):
    """A user who offers bookable slots."""
    __tablename__ = "mentors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    max_participants = Column(Integer, default=1)


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    semester = Column(Integer)


class MentorSubject(Base):
    """Subjects a mentor teaches."""
    __tablename__ = "mentor_subjects"

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, ForeignKey("mentors.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint('mentor_id', 'subject_id', name='uq_mentor_subject'),
    )
