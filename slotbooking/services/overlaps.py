"""
Availability window normalization and same-day overlap detection.

Mentors submit windows either as bare ``"HH:MM"`` strings or as mappings.
``parse_window`` turns both shapes into a ``TimeWindow`` so the overlap check
only ever sees one type.
"""

from dataclasses import dataclass
from datetime import time
from typing import Any, Iterable, Mapping

from slotbooking.core import exceptions
from slotbooking.models.slot import MODALITIES, MODALITY_IN_PERSON, MODALITY_VIRTUAL

DEFAULT_WINDOW_DURATION_MINUTES = 60

_FIELD_ALIASES = {
    'time': ('time', 'hora'),
    'duration_minutes': ('duration_minutes', 'duracion'),
    'modality': ('modality', 'modalidad'),
    'location': ('location', 'locacion'),
    'max_participants': ('max_participants', 'max_alumnos'),
}


@dataclass(frozen=True)
class TimeWindow:
    start: time
    duration_minutes: int
    modality: str = MODALITY_VIRTUAL
    location: str | None = None
    max_participants: int | None = None

    @property
    def start_minutes(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def label(self) -> str:
        return self.start.strftime('%H:%M')


@dataclass(frozen=True)
class OverlapConflict:
    first_start: str
    second_start: str
    duration_minutes: int
    message: str


@dataclass(frozen=True)
class OverlapReport:
    is_valid: bool
    conflicts: list[OverlapConflict]


def parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise exceptions.ValidationError('Start time is required.', details={'time': value})

    parts = value.strip().split(':')
    try:
        if len(parts) not in (2, 3):
            raise ValueError(value)
        return time(int(parts[0]), int(parts[1]))
    except ValueError as exc:
        raise exceptions.ValidationError(
            f'Invalid start time {value!r}; expected HH:MM.',
            details={'time': value},
        ) from exc


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in _FIELD_ALIASES[field]:
        if raw.get(key) is not None:
            return raw[key]
    return None


def parse_window(raw: str | time | Mapping[str, Any], default_duration: int) -> TimeWindow:
    if isinstance(raw, (str, time)):
        return TimeWindow(start=parse_time(raw), duration_minutes=default_duration)

    start = parse_time(_pick(raw, 'time'))

    duration = _pick(raw, 'duration_minutes') or default_duration
    try:
        duration = int(duration)
    except (TypeError, ValueError) as exc:
        raise exceptions.ValidationError('Duration must be a whole number of minutes.') from exc
    if duration <= 0:
        raise exceptions.ValidationError('Duration must be positive.', details={'duration_minutes': duration})

    modality = _pick(raw, 'modality') or MODALITY_VIRTUAL
    if not isinstance(modality, str):
        raise exceptions.ValidationError('Modality must be text.', details={'allowed': list(MODALITIES)})
    modality = modality.strip().lower()
    if modality not in MODALITIES:
        raise exceptions.ValidationError(
            f'Unknown modality {modality!r}.',
            details={'allowed': list(MODALITIES)},
        )

    location = _pick(raw, 'location') if modality == MODALITY_IN_PERSON else None

    max_participants = _pick(raw, 'max_participants')
    if max_participants is not None:
        try:
            max_participants = int(max_participants)
        except (TypeError, ValueError) as exc:
            raise exceptions.ValidationError('Max participants must be a whole number.') from exc
        if max_participants < 1:
            raise exceptions.ValidationError('Max participants must be at least 1.')

    return TimeWindow(
        start=start,
        duration_minutes=duration,
        modality=modality,
        location=location,
        max_participants=max_participants,
    )


def validate_overlaps(windows: Iterable[TimeWindow]) -> OverlapReport:
    """
    Flag windows that start before the previous one (by start time) ends.

    Only neighbours in start order are compared, so a long window that spans
    two later windows is reported against the first of them only.
    """
    ordered = sorted(windows, key=lambda window: window.start_minutes)
    if len(ordered) <= 1:
        return OverlapReport(is_valid=True, conflicts=[])

    conflicts: list[OverlapConflict] = []
    for current, following in zip(ordered, ordered[1:]):
        if current.start_minutes + current.duration_minutes > following.start_minutes:
            conflicts.append(
                OverlapConflict(
                    first_start=current.label,
                    second_start=following.label,
                    duration_minutes=current.duration_minutes,
                    message=f'{current.label} ({current.duration_minutes}min) overlaps with {following.label}',
                )
            )

    return OverlapReport(is_valid=not conflicts, conflicts=conflicts)
