"""
Booking completion: validate, price, charge, then create the session and
confirm the slot in one transaction.
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from slotbooking.core import config, exceptions
from slotbooking.models.mentoring_session import MentoringSession
from slotbooking.models.slot import MODALITY_IN_PERSON, MODALITY_VIRTUAL
from slotbooking.services.notifications import BookingNotice
from slotbooking.services.payments import PaymentGateway, PaymentResult
from slotbooking.services.reservations import ReservationManager
from slotbooking.services.slot_store import SlotRecord, SlotState

logger = logging.getLogger(__name__)

# UYU per session, by modality and participant count
PRICE_TABLE = {
    MODALITY_VIRTUAL: {1: 430, 2: 760, 3: 990},
    MODALITY_IN_PERSON: {1: 630, 2: 1160, 3: 1590},
}
MAX_NOTE_LENGTH = 1000


def calculate_price(participant_count: int, modality: str) -> int:
    price = PRICE_TABLE.get(modality, {}).get(participant_count)
    if price is None:
        raise exceptions.ValidationError(
            f'No price for {participant_count} participant(s) in {modality} sessions.',
            details={'participant_count': participant_count, 'modality': modality},
        )
    return price


def validate_participant_emails(emails: list[str], participant_count: int, domain: str | None = None) -> list[str]:
    domain = domain or config.INSTITUTIONAL_EMAIL_DOMAIN
    pattern = re.compile(r'^[A-Za-z0-9._%+-]+@' + re.escape(domain) + r'$')

    if len(emails) != participant_count:
        raise exceptions.ValidationError(
            'One email is required per participant.',
            details={'participant_count': participant_count, 'emails': len(emails)},
        )

    normalized: list[str] = []
    errors: dict[str, str] = {}
    for index, email in enumerate(emails):
        value = (email or '').strip()
        if not value:
            errors[f'email_{index}'] = 'Email is required.'
        elif not pattern.match(value):
            errors[f'email_{index}'] = f'Must be an @{domain} email.'
        normalized.append(value.lower())

    if errors:
        raise exceptions.ValidationError('Some participant emails are invalid.', details=errors)
    return normalized


@dataclass(frozen=True)
class BookingResult:
    session_id: int
    slot: SlotRecord
    price: int
    payment_reference: str | None


class BookingOrchestrator:
    def __init__(
        self,
        reservations: ReservationManager,
        payment_gateway: PaymentGateway,
        session_factory: sessionmaker,
    ):
        self.reservations = reservations
        self.store = reservations.store
        self.payment_gateway = payment_gateway
        self._session_factory = session_factory

    def list_sessions(self, *, student_id: int | None = None, mentor_id: int | None = None) -> list[MentoringSession]:
        query = select(MentoringSession)
        if student_id is not None:
            query = query.where(MentoringSession.student_id == student_id)
        if mentor_id is not None:
            query = query.where(MentoringSession.mentor_id == mentor_id)

        try:
            with self._session_factory() as db:
                sessions = db.scalars(query.order_by(MentoringSession.start_time.asc())).all()
                db.expunge_all()
                return list(sessions)
        except SQLAlchemyError as exc:
            logger.exception('Listing sessions failed')
            raise exceptions.PersistenceError(details={'operation': 'list_sessions'}) from exc

    def _check_hold(self, slot_id: int, student_id: int) -> SlotRecord:
        slot = self.store.get(slot_id)
        if slot is None:
            raise exceptions.NotFoundError('Slot not found.', details={'slot_id': slot_id})

        state = slot.state_at(self.reservations.clock())
        if slot.reserved_by == student_id and state is SlotState.CONFIRMED:
            raise exceptions.AlreadyBookedError(details={'slot_id': slot_id})
        if slot.reserved_by != student_id or state is not SlotState.HELD:
            raise exceptions.SlotNoLongerAvailableError(details={'slot_id': slot_id})
        return slot

    def complete_booking(
        self,
        slot_id: int,
        student_id: int,
        subject_id: int | None,
        participant_count: int,
        participant_emails: list[str],
        note: str | None = None,
        payment_result: PaymentResult | None = None,
    ) -> BookingResult:
        """
        Turn the student's hold on ``slot_id`` into a paid session.

        A declined payment leaves the hold untouched so the student can retry
        before it expires. When no ``payment_result`` is supplied the gateway
        is charged once.
        """
        emails = validate_participant_emails(participant_emails, participant_count)
        note = (note or '').strip() or None
        if note and len(note) > MAX_NOTE_LENGTH:
            raise exceptions.ValidationError(f'Note must be {MAX_NOTE_LENGTH} characters or fewer.')

        slot = self._check_hold(slot_id, student_id)
        if slot.max_participants is not None and participant_count > slot.max_participants:
            raise exceptions.ValidationError(
                f'This slot accepts at most {slot.max_participants} participant(s).',
                details={'max_participants': slot.max_participants},
            )
        price = calculate_price(participant_count, slot.modality)

        if payment_result is None:
            payment_result = self.payment_gateway.charge(price, f'slot-{slot_id}-student-{student_id}')
        if not payment_result.succeeded:
            logger.info('Payment failed for slot %s student %s: %s', slot_id, student_id, payment_result.reason)
            raise exceptions.PaymentFailedError(details={'slot_id': slot_id, 'reason': payment_result.reason})

        created: dict[str, int] = {}

        def create_session(db: Session, confirmed: SlotRecord) -> None:
            session = MentoringSession(
                slot_id=confirmed.id,
                mentor_id=confirmed.mentor_id,
                student_id=student_id,
                subject_id=subject_id,
                start_time=confirmed.start_time,
                duration_minutes=confirmed.duration_minutes,
                modality=confirmed.modality,
                price=price,
                participant_count=participant_count,
                participant_emails=emails,
                note=note,
                status='confirmed',
                payment_status='paid',
                payment_reference=payment_result.reference,
            )
            db.add(session)
            db.flush()
            created['session_id'] = session.id

        try:
            confirmed = self.reservations.confirm(slot_id, student_id, within=create_session)
        except (exceptions.ConflictError, exceptions.NotFoundError, exceptions.PersistenceError) as exc:
            reconciliation = {
                'slot_id': slot_id,
                'student_id': student_id,
                'payment_reference': payment_result.reference,
                'amount': price,
                'stage': 'confirm_slot_and_create_session',
                'cause': exc.code,
            }
            logger.error('Payment captured but booking not recorded: %s', reconciliation)
            raise exceptions.InconsistencyError(
                'Payment was captured but the booking could not be recorded.',
                details=reconciliation,
            ) from exc

        result = BookingResult(
            session_id=created['session_id'],
            slot=confirmed,
            price=price,
            payment_reference=payment_result.reference,
        )
        try:
            self._notify(result, student_id, subject_id, emails)
        except Exception:
            logger.exception('Booking notification failed for session %s', result.session_id)
        return result

    def _notify(self, result: BookingResult, student_id: int, subject_id: int | None, emails: list[str]) -> None:
        slot = result.slot
        self.reservations.notifier.booking_completed(
            BookingNotice(
                session_id=result.session_id,
                slot_id=slot.id,
                mentor_id=slot.mentor_id,
                student_id=student_id,
                subject_id=subject_id,
                start_time=slot.start_time,
                duration_minutes=slot.duration_minutes,
                modality=slot.modality,
                location=slot.location,
                participant_emails=emails,
            )
        )
