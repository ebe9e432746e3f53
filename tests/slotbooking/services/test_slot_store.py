from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import MENTOR_ID, STUDENT_A_ID, SUBJECT_ID
from slotbooking.core import exceptions
from slotbooking.models.slot import ORIGIN_GENERATED, Slot
from slotbooking.services.overlaps import parse_window
from slotbooking.services.slot_store import SlotState, SlotStore

DAY = date(2025, 6, 10)
NOW = datetime(2025, 6, 9, 12, 0)


def _windows(*raw):
    return [parse_window(item, 60) for item in raw]


def test_replace_day_inserts_manual_slots_in_time_order(store: SlotStore) -> None:
    records = store.replace_day(
        MENTOR_ID,
        DAY,
        _windows({'hora': '16:00', 'modalidad': 'presencial', 'locacion': 'Sala 2'}, '14:00'),
        default_duration=60,
    )

    assert [record.time for record in records] == [time(14, 0), time(16, 0)]
    assert all(record.origin == 'manual' and record.is_available for record in records)
    assert records[1].modality == 'presencial'
    assert records[1].location == 'Sala 2'


def test_replace_day_swaps_previous_manual_configuration(store: SlotStore) -> None:
    store.replace_day(MENTOR_ID, DAY, _windows('09:00', '10:00'), default_duration=60)

    records = store.replace_day(MENTOR_ID, DAY, _windows({'hora': '10:00', 'duracion': 30}, '11:00'), default_duration=60)

    assert [(record.time, record.duration_minutes) for record in records] == [
        (time(10, 0), 30),
        (time(11, 0), 60),
    ]


def test_replace_day_never_touches_held_slots(store: SlotStore) -> None:
    [slot] = store.replace_day(MENTOR_ID, DAY, _windows('09:00'), default_duration=60)
    store.reserve(slot.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    records = store.replace_day(MENTOR_ID, DAY, _windows({'hora': '09:00', 'duracion': 15}, '12:00'), default_duration=60)

    held = records[0]
    assert held.id == slot.id
    assert held.duration_minutes == 60
    assert held.reserved_by == STUDENT_A_ID
    assert held.is_available is False
    assert [record.time for record in records] == [time(9, 0), time(12, 0)]


def test_replace_day_overwrites_available_generated_slot_with_same_key(store: SlotStore, session_factory) -> None:
    with session_factory.begin() as db:
        db.add(Slot(mentor_id=MENTOR_ID, date=DAY, time=time(9, 0), duration_minutes=60, origin=ORIGIN_GENERATED))

    [record] = store.replace_day(MENTOR_ID, DAY, _windows({'hora': '09:00', 'duracion': 45}), default_duration=60)

    assert record.origin == 'manual'
    assert record.duration_minutes == 45
    with session_factory() as db:
        assert len(db.scalars(select(Slot)).all()) == 1


def test_clear_day_removes_only_available_manual_slots(store: SlotStore, session_factory) -> None:
    held, _ = store.replace_day(MENTOR_ID, DAY, _windows('09:00', '10:00'), default_duration=60)
    with session_factory.begin() as db:
        db.add(Slot(mentor_id=MENTOR_ID, date=DAY, time=time(8, 0), duration_minutes=60, origin=ORIGIN_GENERATED))
    store.reserve(held.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    removed = store.clear_day(MENTOR_ID, DAY)

    remaining = store.list_configured(MENTOR_ID, DAY, DAY)
    assert removed == 1
    assert [(record.time, record.origin) for record in remaining] == [
        (time(8, 0), 'generated'),
        (time(9, 0), 'manual'),
    ]


def test_list_configured_includes_reserved_slots_unless_filtered(store: SlotStore) -> None:
    first, second = store.replace_day(MENTOR_ID, DAY, _windows('09:00', '10:00'), default_duration=60)
    store.replace_day(MENTOR_ID, DAY + timedelta(days=1), _windows('08:00'), default_duration=60)
    store.reserve(first.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    all_slots = store.list_configured(MENTOR_ID, DAY, DAY + timedelta(days=1))
    available = store.list_configured(MENTOR_ID, DAY, DAY + timedelta(days=1), only_available=True)

    assert [(record.date, record.time) for record in all_slots] == [
        (DAY, time(9, 0)),
        (DAY, time(10, 0)),
        (DAY + timedelta(days=1), time(8, 0)),
    ]
    assert [record.id for record in available] == [second.id, all_slots[2].id]


def test_list_global_available_enriches_with_mentor_metadata(store: SlotStore) -> None:
    held, free = store.replace_day(MENTOR_ID, DAY, _windows('09:00', '10:00'), default_duration=60)
    store.reserve(held.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    available = store.list_global_available(DAY, DAY, now=NOW)

    assert [entry.slot.id for entry in available] == [free.id]
    assert available[0].mentor_name == 'Ana Mentor'
    assert available[0].mentor_max_participants == 3
    assert available[0].subject_ids == [SUBJECT_ID]


def test_list_global_available_includes_lapsed_holds(store: SlotStore) -> None:
    [slot] = store.replace_day(MENTOR_ID, DAY, _windows('09:00'), default_duration=60)
    store.reserve(slot.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    available = store.list_global_available(DAY, DAY, now=NOW + timedelta(minutes=6))

    assert [entry.slot.id for entry in available] == [slot.id]


def test_get_by_key_returns_none_for_unknown_slot(store: SlotStore) -> None:
    [slot] = store.replace_day(MENTOR_ID, DAY, _windows('09:00'), default_duration=60)

    assert store.get_by_key(MENTOR_ID, DAY, time(9, 0)) == slot
    assert store.get_by_key(MENTOR_ID, DAY, time(9, 30)) is None


def test_state_at_treats_lapsed_hold_as_available(store: SlotStore) -> None:
    [slot] = store.replace_day(MENTOR_ID, DAY, _windows('09:00'), default_duration=60)
    held = store.reserve(slot.id, STUDENT_A_ID, now=NOW, hold_until=NOW + timedelta(minutes=5))

    assert slot.state_at(NOW) is SlotState.AVAILABLE
    assert held.state_at(NOW) is SlotState.HELD
    assert held.state_at(NOW + timedelta(minutes=5)) is SlotState.AVAILABLE


def test_store_wraps_database_errors_in_persistence_error(store: SlotStore, session_factory, monkeypatch) -> None:
    def broken_begin():
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr(session_factory, 'begin', broken_begin)

    with pytest.raises(exceptions.PersistenceError) as exception_info:
        store.get(1)

    assert exception_info.value.details == {'operation': 'get'}
    assert isinstance(exception_info.value.__cause__, OperationalError)
