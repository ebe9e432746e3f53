from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from slotbooking.auth.dependencies import get_current_mentor_id, get_current_user_id
from slotbooking.dependencies import get_booking_orchestrator
from slotbooking.services.booking import MAX_NOTE_LENGTH, BookingOrchestrator

router = APIRouter(tags=['bookings'])


class CompleteBookingRequest(BaseModel):
    slot_id: int
    subject_id: int | None = None
    participant_count: int = Field(default=1, ge=1)
    participant_emails: list[str]
    note: str | None = None

    @field_validator('participant_emails')
    @classmethod
    def normalize_emails(cls, value: list[str]) -> list[str]:
        return [email.strip() for email in value]

    @field_validator('note')
    @classmethod
    def validate_note(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTE_LENGTH:
            raise ValueError(f'Note must be {MAX_NOTE_LENGTH} characters or fewer.')

        return normalized


class BookingResponse(BaseModel):
    session_id: int
    slot_id: int
    mentor_id: int
    start_time: datetime
    duration_minutes: int
    modality: str
    price: int
    payment_reference: str | None = None


class SessionResponse(BaseModel):
    id: int
    slot_id: int
    mentor_id: int
    student_id: int
    subject_id: int | None = None
    start_time: datetime
    duration_minutes: int
    modality: str
    price: int
    participant_count: int
    participant_emails: list[str]
    note: str | None = None
    status: str
    payment_status: str

    class Config:
        from_attributes = True


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def complete_booking(
    data: CompleteBookingRequest,
    student_id: int = Depends(get_current_user_id),
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    result = orchestrator.complete_booking(
        slot_id=data.slot_id,
        student_id=student_id,
        subject_id=data.subject_id,
        participant_count=data.participant_count,
        participant_emails=data.participant_emails,
        note=data.note,
    )
    return BookingResponse(
        session_id=result.session_id,
        slot_id=result.slot.id,
        mentor_id=result.slot.mentor_id,
        start_time=result.slot.start_time,
        duration_minutes=result.slot.duration_minutes,
        modality=result.slot.modality,
        price=result.price,
        payment_reference=result.payment_reference,
    )


@router.get('/mine', response_model=list[SessionResponse])
def list_my_sessions(
    student_id: int = Depends(get_current_user_id),
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    return orchestrator.list_sessions(student_id=student_id)


@router.get('/mentor', response_model=list[SessionResponse])
def list_mentor_sessions(
    mentor_id: int = Depends(get_current_mentor_id),
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    return orchestrator.list_sessions(mentor_id=mentor_id)
