"""
Slot persistence.

This is the only module that writes slot rows. The availability/holder/expiry
fields change exclusively through ``_conditional_update``, which always applies
the predicate for the expected prior state inside the UPDATE statement itself.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Callable, TypeVar

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from slotbooking.core import exceptions
from slotbooking.models.mentor import Mentor, MentorSubject
from slotbooking.models.slot import ORIGIN_MANUAL, Slot
from slotbooking.models.user import User
from slotbooking.services.overlaps import TimeWindow

logger = logging.getLogger(__name__)

T = TypeVar('T')


class SlotState(str, enum.Enum):
    AVAILABLE = 'available'
    HELD = 'held'
    CONFIRMED = 'confirmed'


class ExpectedState(enum.Enum):
    """Prior state a transition requires. Each maps to one WHERE clause."""

    RESERVABLE = 'reservable'
    HELD_BY_HOLDER = 'held_by_holder'
    LIVE_HOLD_BY_HOLDER = 'live_hold_by_holder'
    LAPSED_HOLD = 'lapsed_hold'


@dataclass(frozen=True)
class SlotRecord:
    id: int
    mentor_id: int
    date: date
    time: time
    duration_minutes: int
    modality: str
    location: str | None
    max_participants: int | None
    origin: str
    is_available: bool
    reserved_by: int | None
    reserved_until: datetime | None

    @classmethod
    def from_model(cls, slot: Slot) -> 'SlotRecord':
        return cls(
            id=slot.id,
            mentor_id=slot.mentor_id,
            date=slot.date,
            time=slot.time,
            duration_minutes=slot.duration_minutes,
            modality=slot.modality,
            location=slot.location,
            max_participants=slot.max_participants,
            origin=slot.origin,
            is_available=slot.is_available,
            reserved_by=slot.reserved_by,
            reserved_until=slot.reserved_until,
        )

    @property
    def start_time(self) -> datetime:
        return datetime.combine(self.date, self.time)

    def state_at(self, now: datetime) -> SlotState:
        """Logical state; a hold whose expiry has passed counts as available."""
        if self.is_available:
            return SlotState.AVAILABLE
        if self.reserved_until is None:
            return SlotState.CONFIRMED
        if self.reserved_until <= now:
            return SlotState.AVAILABLE
        return SlotState.HELD


@dataclass(frozen=True)
class AvailableSlot:
    slot: SlotRecord
    mentor_name: str | None
    mentor_max_participants: int | None
    subject_ids: list[int]


class SlotStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        try:
            with self._session_factory.begin() as db:
                return work(db)
        except SQLAlchemyError as exc:
            logger.exception('Slot store operation %s failed', operation)
            raise exceptions.PersistenceError(details={'operation': operation}) from exc

    # -- mentor configuration -------------------------------------------------

    def replace_day(
        self,
        mentor_id: int,
        slot_date: date,
        windows: list[TimeWindow],
        default_duration: int,
    ) -> list[SlotRecord]:
        """
        Swap the mentor's manual availability for ``slot_date`` with ``windows``.

        Held or confirmed slots are never removed or overwritten; a window whose
        key collides with one of them is left as is.
        """
        def work(db: Session) -> list[SlotRecord]:
            db.execute(
                delete(Slot)
                .where(
                    Slot.mentor_id == mentor_id,
                    Slot.date == slot_date,
                    Slot.origin == ORIGIN_MANUAL,
                    Slot.is_available.is_(True),
                    Slot.reserved_by.is_(None),
                )
                .execution_options(synchronize_session=False)
            )

            insert = postgresql_insert if db.get_bind().dialect.name == 'postgresql' else sqlite_insert
            for window in windows:
                statement = insert(Slot).values(
                    mentor_id=mentor_id,
                    date=slot_date,
                    time=window.start,
                    duration_minutes=window.duration_minutes or default_duration,
                    modality=window.modality,
                    location=window.location,
                    max_participants=window.max_participants,
                    origin=ORIGIN_MANUAL,
                    is_available=True,
                )
                statement = statement.on_conflict_do_update(
                    index_elements=[Slot.mentor_id, Slot.date, Slot.time],
                    set_={
                        'duration_minutes': statement.excluded.duration_minutes,
                        'modality': statement.excluded.modality,
                        'location': statement.excluded.location,
                        'max_participants': statement.excluded.max_participants,
                        'origin': statement.excluded.origin,
                    },
                    where=and_(Slot.is_available.is_(True), Slot.reserved_by.is_(None)),
                )
                db.execute(statement)

            rows = db.scalars(
                select(Slot)
                .where(Slot.mentor_id == mentor_id, Slot.date == slot_date)
                .order_by(Slot.time.asc())
            ).all()
            return [SlotRecord.from_model(row) for row in rows]

        records = self._run('replace_day', work)
        logger.info('Replaced manual slots for mentor %s on %s (%d windows)', mentor_id, slot_date, len(windows))
        return records

    def clear_day(self, mentor_id: int, slot_date: date) -> int:
        """Remove the mentor's manual, still-available slots for ``slot_date``."""
        def work(db: Session) -> int:
            result = db.execute(
                delete(Slot)
                .where(
                    Slot.mentor_id == mentor_id,
                    Slot.date == slot_date,
                    Slot.origin == ORIGIN_MANUAL,
                    Slot.is_available.is_(True),
                    Slot.reserved_by.is_(None),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        removed = self._run('clear_day', work)
        logger.info('Cleared %d manual slots for mentor %s on %s', removed, mentor_id, slot_date)
        return removed

    def list_configured(
        self,
        mentor_id: int,
        date_from: date,
        date_to: date,
        only_available: bool = False,
    ) -> list[SlotRecord]:
        def work(db: Session) -> list[SlotRecord]:
            query = select(Slot).where(
                Slot.mentor_id == mentor_id,
                Slot.date >= date_from,
                Slot.date <= date_to,
            )
            if only_available:
                query = query.where(Slot.is_available.is_(True))
            rows = db.scalars(query.order_by(Slot.date.asc(), Slot.time.asc())).all()
            return [SlotRecord.from_model(row) for row in rows]

        return self._run('list_configured', work)

    def list_global_available(self, date_from: date, date_to: date, now: datetime) -> list[AvailableSlot]:
        def work(db: Session) -> list[AvailableSlot]:
            rows = db.execute(
                select(Slot, User.name, Mentor.max_participants)
                .outerjoin(Mentor, Mentor.id == Slot.mentor_id)
                .outerjoin(User, User.id == Mentor.user_id)
                .where(
                    Slot.date >= date_from,
                    Slot.date <= date_to,
                    self._expectation_clause(ExpectedState.RESERVABLE, now=now),
                )
                .order_by(Slot.date.asc(), Slot.time.asc())
            ).all()

            mentor_ids = {slot.mentor_id for slot, _, _ in rows}
            subjects: dict[int, list[int]] = {mentor_id: [] for mentor_id in mentor_ids}
            if mentor_ids:
                for mentor_id, subject_id in db.execute(
                    select(MentorSubject.mentor_id, MentorSubject.subject_id)
                    .where(MentorSubject.mentor_id.in_(mentor_ids))
                    .order_by(MentorSubject.subject_id.asc())
                ):
                    subjects[mentor_id].append(subject_id)

            return [
                AvailableSlot(
                    slot=SlotRecord.from_model(slot),
                    mentor_name=mentor_name,
                    mentor_max_participants=mentor_max_participants,
                    subject_ids=list(subjects.get(slot.mentor_id, [])),
                )
                for slot, mentor_name, mentor_max_participants in rows
            ]

        return self._run('list_global_available', work)

    def get_by_key(self, mentor_id: int, slot_date: date, slot_time: time) -> SlotRecord | None:
        def work(db: Session) -> SlotRecord | None:
            slot = db.scalars(
                select(Slot).where(
                    Slot.mentor_id == mentor_id,
                    Slot.date == slot_date,
                    Slot.time == slot_time,
                )
            ).first()
            return SlotRecord.from_model(slot) if slot else None

        return self._run('get_by_key', work)

    def get(self, slot_id: int) -> SlotRecord | None:
        def work(db: Session) -> SlotRecord | None:
            slot = db.get(Slot, slot_id)
            return SlotRecord.from_model(slot) if slot else None

        return self._run('get', work)

    # -- reservation transitions ----------------------------------------------

    @staticmethod
    def _expectation_clause(expected: ExpectedState, *, now: datetime, holder: int | None = None):
        lapsed_hold = and_(
            Slot.is_available.is_(False),
            Slot.reserved_until.is_not(None),
            Slot.reserved_until <= now,
        )
        if expected is ExpectedState.RESERVABLE:
            return or_(
                and_(Slot.is_available.is_(True), Slot.reserved_by.is_(None)),
                lapsed_hold,
            )
        if expected is ExpectedState.HELD_BY_HOLDER:
            return and_(
                Slot.is_available.is_(False),
                Slot.reserved_by == holder,
                Slot.reserved_until.is_not(None),
            )
        if expected is ExpectedState.LIVE_HOLD_BY_HOLDER:
            return and_(
                Slot.is_available.is_(False),
                Slot.reserved_by == holder,
                Slot.reserved_until.is_not(None),
                Slot.reserved_until > now,
            )
        if expected is ExpectedState.LAPSED_HOLD:
            return and_(Slot.reserved_until.is_not(None), Slot.reserved_until <= now)
        raise ValueError(f'Unsupported expected state: {expected}')

    def _conditional_update(
        self,
        operation: str,
        slot_id: int,
        expected: ExpectedState,
        values: dict,
        *,
        now: datetime,
        holder: int | None = None,
        within: Callable[[Session, SlotRecord], None] | None = None,
    ) -> SlotRecord | None:
        """
        Apply ``values`` to the slot only if it is in ``expected`` state.

        Returns None when no row matched. ``within`` runs in the same
        transaction after a successful update; anything it raises rolls the
        transition back.
        """
        def work(db: Session) -> SlotRecord | None:
            result = db.execute(
                update(Slot)
                .where(Slot.id == slot_id, self._expectation_clause(expected, now=now, holder=holder))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            record = SlotRecord.from_model(db.get(Slot, slot_id, populate_existing=True))
            if within is not None:
                within(db, record)
            return record

        return self._run(operation, work)

    def reserve(self, slot_id: int, holder: int, *, now: datetime, hold_until: datetime) -> SlotRecord | None:
        return self._conditional_update(
            'reserve',
            slot_id,
            ExpectedState.RESERVABLE,
            {'is_available': False, 'reserved_by': holder, 'reserved_until': hold_until},
            now=now,
        )

    def confirm(
        self,
        slot_id: int,
        holder: int,
        *,
        now: datetime,
        within: Callable[[Session, SlotRecord], None] | None = None,
    ) -> SlotRecord | None:
        return self._conditional_update(
            'confirm',
            slot_id,
            ExpectedState.LIVE_HOLD_BY_HOLDER,
            {'is_available': False, 'reserved_by': holder, 'reserved_until': None},
            now=now,
            holder=holder,
            within=within,
        )

    def release(self, slot_id: int, holder: int, *, now: datetime) -> SlotRecord | None:
        return self._conditional_update(
            'release',
            slot_id,
            ExpectedState.HELD_BY_HOLDER,
            {'is_available': True, 'reserved_by': None, 'reserved_until': None},
            now=now,
            holder=holder,
        )

    def release_expired(self, now: datetime) -> list[int]:
        """Reset every lapsed hold to available; returns the freed slot ids."""
        def work(db: Session) -> list[int]:
            result = db.execute(
                update(Slot)
                .where(self._expectation_clause(ExpectedState.LAPSED_HOLD, now=now))
                .values(is_available=True, reserved_by=None, reserved_until=None)
                .returning(Slot.id)
                .execution_options(synchronize_session=False)
            )
            return sorted(result.scalars().all())

        return self._run('release_expired', work)
