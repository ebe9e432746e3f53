"""
Domain errors for slot reservation and booking.

Every failure the core can report has its own class and ``code`` so the API
layer (and any reconciliation tooling) can tell them apart without parsing
messages.
"""

from typing import Any

from fastapi import HTTPException, status


class SlotBookingError(Exception):
    """Base class for all slot booking failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = 'slot_booking_error'

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class ValidationError(SlotBookingError):
    """Malformed input: bad email domain, overlapping windows, missing fields."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'validation_error'


class NotFoundError(SlotBookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'


class ForbiddenError(SlotBookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'forbidden'


class ConflictError(SlotBookingError):
    """A conditional slot transition lost a race against another actor."""

    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message or 'Someone else already took this slot. Refresh and pick another time.',
            **kwargs,
        )


class SlotNoLongerAvailableError(SlotBookingError):
    """The hold expired or was taken between selection and checkout."""

    status_code = status.HTTP_409_CONFLICT
    default_code = 'slot_no_longer_available'

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message or 'Sorry, this slot is no longer available. Someone else reserved it.',
            **kwargs,
        )


class AlreadyBookedError(SlotBookingError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'already_booked'

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message or 'This slot is already booked by you.', **kwargs)


class PaymentFailedError(SlotBookingError):
    """Payment was declined; the hold is kept so the student can retry."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_code = 'payment_failed'

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message or 'The payment could not be processed. Please try again.', **kwargs)


class PersistenceError(SlotBookingError):
    """The store was unreachable or rejected the write. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = 'persistence_error'

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message or 'Database unavailable. Verify DATABASE_URL and database credentials.',
            **kwargs,
        )


class InconsistencyError(SlotBookingError):
    """
    Payment, session and slot state disagree after a partial failure.

    Never retried or rolled back automatically; the details carry what a
    reconciliation process needs to repair it.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = 'inconsistency'
