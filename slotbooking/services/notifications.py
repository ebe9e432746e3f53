import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingNotice:
    session_id: int
    slot_id: int
    mentor_id: int
    student_id: int
    subject_id: int | None
    start_time: datetime
    duration_minutes: int
    modality: str
    location: str | None
    participant_emails: list[str]


class SlotEventNotifier(Protocol):
    def booking_completed(self, notice: BookingNotice) -> None: ...

    def holds_released(self, slot_ids: list[int]) -> None: ...


class LoggingNotifier:
    """Records events in the log; delivery lives outside this service."""

    def booking_completed(self, notice: BookingNotice) -> None:
        logger.info(
            'Booking completed: session=%s slot=%s mentor=%s student=%s at %s (%s)',
            notice.session_id,
            notice.slot_id,
            notice.mentor_id,
            notice.student_id,
            notice.start_time.isoformat(),
            notice.modality,
        )

    def holds_released(self, slot_ids: list[int]) -> None:
        if slot_ids:
            logger.info('Expired holds released for slots %s', slot_ids)
