import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from slotbooking.core import config
from slotbooking.core.exceptions import SlotBookingError
from slotbooking.database import Base, SessionLocal, engine, ensure_slot_schema
from slotbooking.models import mentor, mentoring_session, slot, user  # noqa: F401
from slotbooking.routes import booking_routes, slot_routes
from slotbooking.services.expiry_sweeper import ExpirySweeper
from slotbooking.services.notifications import LoggingNotifier
from slotbooking.services.reservations import ReservationManager
from slotbooking.services.slot_store import SlotStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

expiry_sweeper = ExpirySweeper(ReservationManager(SlotStore(SessionLocal), notifier=LoggingNotifier()))


@app.exception_handler(SlotBookingError)
async def handle_slot_booking_error(request: Request, exc: SlotBookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s (%s)', request.method, request.url.path, exc.code, exc.details)
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content={'detail': http_exc.detail})


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_slot_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
def start_expiry_sweeper() -> None:
    if config.EXPIRY_SWEEP_ENABLED:
        expiry_sweeper.start()


@app.on_event('shutdown')
def stop_expiry_sweeper() -> None:
    expiry_sweeper.stop()


@app.get('/')
def root():
    return {'status': 'Slot Booking API Running'}


app.include_router(slot_routes.router, prefix='/slots')
app.include_router(booking_routes.router, prefix='/bookings')
