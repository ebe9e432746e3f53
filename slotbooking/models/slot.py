"""Slot model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.sql import func
from slotbooking.database import Base

MODALITY_VIRTUAL = 'virtual'
MODALITY_IN_PERSON = 'presencial'
MODALITIES = (MODALITY_VIRTUAL, MODALITY_IN_PERSON)

ORIGIN_MANUAL = 'manual'
ORIGIN_GENERATED = 'generated'


class Slot(Base):
    """
    A bookable time window offered by a mentor.

    is_available=False with reserved_until set is a temporary hold;
    is_available=False with reserved_until NULL is a confirmed booking.
    """
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, ForeignKey("mentors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    modality = Column(String(20), nullable=False, default=MODALITY_VIRTUAL)
    location = Column(String, nullable=True)
    max_participants = Column(Integer, nullable=True)
    origin = Column(String(20), nullable=False, default=ORIGIN_MANUAL)
    is_available = Column(Boolean, nullable=False, default=True)
    reserved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reserved_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('mentor_id', 'date', 'time', name='uq_slot_mentor_date_time'),
    )

    def __repr__(self):
        return f"<Slot {self.id} mentor={self.mentor_id} {self.date} {self.time}>"
