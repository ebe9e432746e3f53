"""Mentoring session (booking outcome) definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func
from slotbooking.database import Base


class MentoringSession(Base):
    """A paid, confirmed booking of a slot."""
    __tablename__ = "mentoring_sessions"

    id = Column(Integer, primary_key=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False, index=True)
    mentor_id = Column(Integer, ForeignKey("mentors.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=True)
    start_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    modality = Column(String(20), nullable=False)
    price = Column(Integer, nullable=False)
    participant_count = Column(Integer, nullable=False, default=1)
    participant_emails = Column(JSON, nullable=False, default=list)
    note = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='confirmed')
    payment_status = Column(String(20), nullable=False, default='paid')
    payment_reference = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
