"""Service wiring for the API layer. Overridden in tests via ``app.dependency_overrides``."""

from fastapi import Depends

from slotbooking.core import config
from slotbooking.database import SessionLocal
from slotbooking.services.booking import BookingOrchestrator
from slotbooking.services.notifications import LoggingNotifier
from slotbooking.services.payments import SimulatedPaymentGateway
from slotbooking.services.reservations import ReservationManager
from slotbooking.services.slot_store import SlotStore


def get_slot_store() -> SlotStore:
    return SlotStore(SessionLocal)


def get_reservation_manager(store: SlotStore = Depends(get_slot_store)) -> ReservationManager:
    return ReservationManager(store, notifier=LoggingNotifier())


def get_booking_orchestrator(
    reservations: ReservationManager = Depends(get_reservation_manager),
) -> BookingOrchestrator:
    return BookingOrchestrator(
        reservations,
        payment_gateway=SimulatedPaymentGateway(approve=config.PAYMENTS_SIMULATED_APPROVE),
        session_factory=SessionLocal,
    )
