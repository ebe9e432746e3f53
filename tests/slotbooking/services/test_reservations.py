import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import MENTOR_ID, STUDENT_A_ID, STUDENT_B_ID, RecordingNotifier
from slotbooking.core import exceptions
from slotbooking.database import Base
from slotbooking.services.overlaps import parse_window
from slotbooking.services.reservations import HOLD_DURATION, ReservationManager
from slotbooking.services.slot_store import SlotStore

DAY = date(2025, 6, 10)


@pytest.fixture
def slot_id(store) -> int:
    [slot] = store.replace_day(MENTOR_ID, DAY, [parse_window('14:00', 60)], default_duration=60)
    return slot.id


def test_reserve_holds_available_slot_for_five_minutes(reservations: ReservationManager, slot_id: int, clock) -> None:
    held = reservations.reserve(slot_id, STUDENT_A_ID)

    assert held.is_available is False
    assert held.reserved_by == STUDENT_A_ID
    assert held.reserved_until == clock.now + timedelta(minutes=5)
    assert HOLD_DURATION == timedelta(minutes=5)


def test_second_reserve_on_held_slot_conflicts_without_changing_it(
    reservations: ReservationManager,
    slot_id: int,
) -> None:
    held = reservations.reserve(slot_id, STUDENT_A_ID)

    with pytest.raises(exceptions.ConflictError) as exception_info:
        reservations.reserve(slot_id, STUDENT_B_ID)

    assert 'Someone else' in exception_info.value.message
    assert reservations.store.get(slot_id) == held


def test_reserve_takes_over_lapsed_hold_before_any_sweep(
    reservations: ReservationManager,
    slot_id: int,
    clock,
) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)
    clock.advance(minutes=5, seconds=1)

    held = reservations.reserve(slot_id, STUDENT_B_ID)

    assert held.reserved_by == STUDENT_B_ID
    assert held.reserved_until == clock.now + HOLD_DURATION


def test_reserve_unknown_slot_is_not_found(reservations: ReservationManager) -> None:
    with pytest.raises(exceptions.NotFoundError):
        reservations.reserve(999, STUDENT_A_ID)


def test_confirm_by_non_holder_conflicts(reservations: ReservationManager, slot_id: int) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)

    with pytest.raises(exceptions.ConflictError):
        reservations.confirm(slot_id, STUDENT_B_ID)


def test_confirm_by_holder_makes_slot_permanently_unavailable(
    reservations: ReservationManager,
    slot_id: int,
    clock,
) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)

    confirmed = reservations.confirm(slot_id, STUDENT_A_ID)

    assert confirmed.is_available is False
    assert confirmed.reserved_by == STUDENT_A_ID
    assert confirmed.reserved_until is None

    clock.advance(hours=1)
    for student_id in (STUDENT_A_ID, STUDENT_B_ID):
        with pytest.raises(exceptions.ConflictError):
            reservations.reserve(slot_id, student_id)


def test_confirm_twice_conflicts(reservations: ReservationManager, slot_id: int) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)
    reservations.confirm(slot_id, STUDENT_A_ID)

    with pytest.raises(exceptions.ConflictError):
        reservations.confirm(slot_id, STUDENT_A_ID)


def test_confirm_after_hold_lapsed_conflicts(reservations: ReservationManager, slot_id: int, clock) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)
    clock.advance(minutes=6)

    with pytest.raises(exceptions.ConflictError):
        reservations.confirm(slot_id, STUDENT_A_ID)


def test_confirm_rolls_back_when_callback_fails(reservations: ReservationManager, slot_id: int) -> None:
    held = reservations.reserve(slot_id, STUDENT_A_ID)

    def failing_callback(db, record):
        raise RuntimeError('boom')

    with pytest.raises(RuntimeError):
        reservations.confirm(slot_id, STUDENT_A_ID, within=failing_callback)

    assert reservations.store.get(slot_id) == held


def test_cancel_by_holder_restores_available_state(reservations: ReservationManager, slot_id: int) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)

    released = reservations.cancel(slot_id, STUDENT_A_ID)

    assert released.is_available is True
    assert released.reserved_by is None
    assert released.reserved_until is None


def test_cancel_by_other_student_conflicts(reservations: ReservationManager, slot_id: int) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)

    with pytest.raises(exceptions.ConflictError):
        reservations.cancel(slot_id, STUDENT_B_ID)


def test_cancel_confirmed_slot_conflicts(reservations: ReservationManager, slot_id: int) -> None:
    reservations.reserve(slot_id, STUDENT_A_ID)
    reservations.confirm(slot_id, STUDENT_A_ID)

    with pytest.raises(exceptions.ConflictError):
        reservations.cancel(slot_id, STUDENT_A_ID)

    assert reservations.store.get(slot_id).reserved_until is None


def test_expire_stale_releases_only_lapsed_holds_and_is_idempotent(
    reservations: ReservationManager,
    store,
    clock,
    notifier,
) -> None:
    lapsed, live, booked = store.replace_day(
        MENTOR_ID,
        DAY,
        [parse_window(start, 60) for start in ('09:00', '11:00', '13:00')],
        default_duration=60,
    )
    reservations.reserve(lapsed.id, STUDENT_A_ID)
    reservations.reserve(booked.id, STUDENT_A_ID)
    reservations.confirm(booked.id, STUDENT_A_ID)
    clock.advance(minutes=4)
    reservations.reserve(live.id, STUDENT_B_ID)
    clock.advance(minutes=2)

    first_run = reservations.expire_stale()
    second_run = reservations.expire_stale()

    assert first_run == [lapsed.id]
    assert second_run == []
    assert notifier.released == [[lapsed.id]]
    assert store.get(lapsed.id).is_available is True
    assert store.get(live.id).reserved_by == STUDENT_B_ID
    assert store.get(booked.id).is_available is False


def test_concurrent_reserve_leaves_exactly_one_holder(tmp_path, clock) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrent.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    manager = ReservationManager(SlotStore(factory), notifier=RecordingNotifier(), clock=clock)
    [slot] = manager.store.replace_day(MENTOR_ID, DAY, [parse_window('14:00', 60)], default_duration=60)

    students = list(range(100, 116))
    barrier = threading.Barrier(len(students))

    def attempt(student_id: int) -> str:
        barrier.wait()
        try:
            manager.reserve(slot.id, student_id)
        except exceptions.ConflictError:
            return 'conflict'
        return 'ok'

    try:
        with ThreadPoolExecutor(max_workers=len(students)) as pool:
            outcomes = list(pool.map(attempt, students))

        assert outcomes.count('ok') == 1
        assert outcomes.count('conflict') == len(students) - 1
        winner = students[outcomes.index('ok')]
        assert manager.store.get(slot.id).reserved_by == winner
    finally:
        engine.dispose()
