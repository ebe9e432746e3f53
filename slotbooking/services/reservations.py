"""
Hold -> confirm -> release/expire lifecycle for slots.

All transitions go through the Slot Store's conditional updates; this module
never reads a slot and then writes it back.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from slotbooking.core import exceptions
from slotbooking.core.clock import utc_now
from slotbooking.services.notifications import LoggingNotifier, SlotEventNotifier
from slotbooking.services.slot_store import SlotRecord, SlotStore

logger = logging.getLogger(__name__)

HOLD_DURATION = timedelta(minutes=5)


class ReservationManager:
    def __init__(
        self,
        store: SlotStore,
        notifier: SlotEventNotifier | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

    def _lost_race(self, slot_id: int, operation: str) -> exceptions.SlotBookingError:
        if self.store.get(slot_id) is None:
            return exceptions.NotFoundError('Slot not found.', details={'slot_id': slot_id})
        logger.info('%s on slot %s lost to a concurrent change', operation, slot_id)
        return exceptions.ConflictError(details={'slot_id': slot_id, 'operation': operation})

    def reserve(self, slot_id: int, student_id: int) -> SlotRecord:
        now = self.clock()
        slot = self.store.reserve(slot_id, student_id, now=now, hold_until=now + HOLD_DURATION)
        if slot is None:
            raise self._lost_race(slot_id, 'reserve')

        logger.info('Slot %s held by student %s until %s', slot_id, student_id, slot.reserved_until)
        return slot

    def confirm(
        self,
        slot_id: int,
        student_id: int,
        within: Callable[[Session, SlotRecord], None] | None = None,
    ) -> SlotRecord:
        slot = self.store.confirm(slot_id, student_id, now=self.clock(), within=within)
        if slot is None:
            raise self._lost_race(slot_id, 'confirm')

        logger.info('Slot %s confirmed for student %s', slot_id, student_id)
        return slot

    def cancel(self, slot_id: int, student_id: int) -> SlotRecord:
        slot = self.store.release(slot_id, student_id, now=self.clock())
        if slot is None:
            raise self._lost_race(slot_id, 'cancel')

        logger.info('Hold on slot %s cancelled by student %s', slot_id, student_id)
        return slot

    def expire_stale(self) -> list[int]:
        freed = self.store.release_expired(self.clock())
        if freed:
            logger.info('Released %d expired holds', len(freed))
            self.notifier.holds_released(freed)
        return freed
