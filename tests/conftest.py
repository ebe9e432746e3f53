import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('EXPIRY_SWEEP_ENABLED', 'false')

from slotbooking.database import Base  # noqa: E402
from slotbooking.models.mentor import Mentor, MentorSubject, Subject  # noqa: E402
from slotbooking.models.mentoring_session import MentoringSession  # noqa: E402,F401
from slotbooking.models.slot import Slot  # noqa: E402,F401
from slotbooking.models.user import User  # noqa: E402
from slotbooking.services.booking import BookingOrchestrator  # noqa: E402
from slotbooking.services.notifications import BookingNotice  # noqa: E402
from slotbooking.services.payments import SimulatedPaymentGateway  # noqa: E402
from slotbooking.services.reservations import ReservationManager  # noqa: E402
from slotbooking.services.slot_store import SlotStore  # noqa: E402

MENTOR_USER_ID = 1
STUDENT_A_ID = 2
STUDENT_B_ID = 3
MENTOR_ID = 10
SUBJECT_ID = 100


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.bookings: list[BookingNotice] = []
        self.released: list[list[int]] = []

    def booking_completed(self, notice: BookingNotice) -> None:
        self.bookings.append(notice)

    def holds_released(self, slot_ids: list[int]) -> None:
        self.released.append(slot_ids)


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with factory.begin() as db:
        db.add_all([
            User(id=MENTOR_USER_ID, email='mentor@correo.um.edu.uy', name='Ana Mentor', role='mentor'),
            User(id=STUDENT_A_ID, email='alumno.a@correo.um.edu.uy', name='Alumno A', role='student'),
            User(id=STUDENT_B_ID, email='alumno.b@correo.um.edu.uy', name='Alumno B', role='student'),
        ])
        db.flush()
        db.add(Mentor(id=MENTOR_ID, user_id=MENTOR_USER_ID, max_participants=3))
        db.add(Subject(id=SUBJECT_ID, name='Calculo I', semester=1))
        db.flush()
        db.add(MentorSubject(mentor_id=MENTOR_ID, subject_id=SUBJECT_ID))

    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 6, 9, 12, 0))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(session_factory) -> SlotStore:
    return SlotStore(session_factory)


@pytest.fixture
def reservations(store, notifier, clock) -> ReservationManager:
    return ReservationManager(store, notifier=notifier, clock=clock)


@pytest.fixture
def payment_gateway() -> SimulatedPaymentGateway:
    return SimulatedPaymentGateway(approve=True)


@pytest.fixture
def orchestrator(reservations, payment_gateway, session_factory) -> BookingOrchestrator:
    return BookingOrchestrator(reservations, payment_gateway=payment_gateway, session_factory=session_factory)
