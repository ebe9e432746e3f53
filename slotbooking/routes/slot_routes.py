from datetime import date, datetime, time, timedelta
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, field_validator

from slotbooking.auth.dependencies import get_current_mentor_id, get_current_user_id
from slotbooking.core import exceptions
from slotbooking.dependencies import get_reservation_manager, get_slot_store
from slotbooking.services.overlaps import (
    DEFAULT_WINDOW_DURATION_MINUTES,
    TimeWindow,
    parse_time,
    parse_window,
    validate_overlaps,
)
from slotbooking.services.reservations import ReservationManager
from slotbooking.services.slot_store import SlotRecord, SlotStore

router = APIRouter(tags=['slots'])

MAX_LISTING_RANGE_DAYS = 62


class DayWindowsRequest(BaseModel):
    windows: list[str | dict[str, Any]]
    default_duration_minutes: int = Field(default=DEFAULT_WINDOW_DURATION_MINUTES, gt=0)

    @field_validator('windows')
    @classmethod
    def validate_windows(cls, value: list[str | dict[str, Any]]) -> list[str | dict[str, Any]]:
        if len(value) > 48:
            raise ValueError('At most 48 windows can be configured per day.')
        return value


class SlotResponse(BaseModel):
    id: int
    mentor_id: int
    date: date
    time: time
    duration_minutes: int
    modality: str
    location: str | None = None
    max_participants: int | None = None
    origin: str
    is_available: bool
    reserved_by: int | None = None
    reserved_until: datetime | None = None

    class Config:
        from_attributes = True


class AvailableSlotResponse(SlotResponse):
    mentor_name: str | None = None
    mentor_max_participants: int | None = None
    subject_ids: list[int] = []


class OverlapConflictResponse(BaseModel):
    first_start: str
    second_start: str
    duration_minutes: int
    message: str

    class Config:
        from_attributes = True


class OverlapReportResponse(BaseModel):
    is_valid: bool
    conflicts: list[OverlapConflictResponse]


def normalize_windows(data: DayWindowsRequest) -> list[TimeWindow]:
    return [parse_window(raw, data.default_duration_minutes) for raw in data.windows]


def validate_date_range(date_from: date, date_to: date) -> None:
    if date_to < date_from:
        raise exceptions.ValidationError('date_to must not be before date_from.')
    if date_to - date_from > timedelta(days=MAX_LISTING_RANGE_DAYS):
        raise exceptions.ValidationError(f'Date ranges are limited to {MAX_LISTING_RANGE_DAYS} days.')


def to_slot_response(record: SlotRecord) -> SlotResponse:
    return SlotResponse.model_validate(record)


@router.post('/validate-overlaps', response_model=OverlapReportResponse)
def check_overlaps(data: DayWindowsRequest):
    report = validate_overlaps(normalize_windows(data))
    return OverlapReportResponse(
        is_valid=report.is_valid,
        conflicts=[OverlapConflictResponse.model_validate(conflict) for conflict in report.conflicts],
    )


@router.put('/days/{slot_date}', response_model=list[SlotResponse])
def replace_day(
    slot_date: date,
    data: DayWindowsRequest,
    mentor_id: int = Depends(get_current_mentor_id),
    store: SlotStore = Depends(get_slot_store),
):
    windows = normalize_windows(data)
    report = validate_overlaps(windows)
    if not report.is_valid:
        raise exceptions.ValidationError(
            'Some time windows overlap.',
            details={'conflicts': [conflict.message for conflict in report.conflicts]},
        )

    records = store.replace_day(mentor_id, slot_date, windows, data.default_duration_minutes)
    return [to_slot_response(record) for record in records]


@router.delete('/days/{slot_date}', status_code=status.HTTP_204_NO_CONTENT)
def clear_day(
    slot_date: date,
    mentor_id: int = Depends(get_current_mentor_id),
    store: SlotStore = Depends(get_slot_store),
):
    store.clear_day(mentor_id, slot_date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/mine', response_model=list[SlotResponse])
def list_configured(
    date_from: date = Query(...),
    date_to: date = Query(...),
    only_available: bool = Query(default=False),
    mentor_id: int = Depends(get_current_mentor_id),
    store: SlotStore = Depends(get_slot_store),
):
    validate_date_range(date_from, date_to)
    records = store.list_configured(mentor_id, date_from, date_to, only_available=only_available)
    return [to_slot_response(record) for record in records]


@router.get('/available', response_model=list[AvailableSlotResponse])
def list_global_available(
    date_from: date = Query(...),
    date_to: date = Query(...),
    reservations: ReservationManager = Depends(get_reservation_manager),
):
    validate_date_range(date_from, date_to)
    available = reservations.store.list_global_available(date_from, date_to, now=reservations.clock())
    return [
        AvailableSlotResponse(
            **to_slot_response(entry.slot).model_dump(),
            mentor_name=entry.mentor_name,
            mentor_max_participants=entry.mentor_max_participants,
            subject_ids=entry.subject_ids,
        )
        for entry in available
    ]


@router.get('/lookup', response_model=SlotResponse)
def get_slot_by_key(
    mentor_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    slot_time: str = Query(..., alias='time'),
    store: SlotStore = Depends(get_slot_store),
):
    record = store.get_by_key(mentor_id, slot_date, parse_time(slot_time))
    if record is None:
        raise exceptions.NotFoundError('Slot not found.')
    return to_slot_response(record)


@router.post('/{slot_id}/reserve', response_model=SlotResponse)
def reserve_slot(
    slot_id: int,
    student_id: int = Depends(get_current_user_id),
    reservations: ReservationManager = Depends(get_reservation_manager),
):
    return to_slot_response(reservations.reserve(slot_id, student_id))


@router.post('/{slot_id}/confirm', response_model=SlotResponse)
def confirm_slot(
    slot_id: int,
    student_id: int = Depends(get_current_user_id),
    reservations: ReservationManager = Depends(get_reservation_manager),
):
    return to_slot_response(reservations.confirm(slot_id, student_id))


@router.post('/{slot_id}/cancel', response_model=SlotResponse)
def cancel_hold(
    slot_id: int,
    student_id: int = Depends(get_current_user_id),
    reservations: ReservationManager = Depends(get_reservation_manager),
):
    return to_slot_response(reservations.cancel(slot_id, student_id))
