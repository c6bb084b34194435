from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied
from rest_framework.views import exception_handler


class RoomNotFound(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Room not found."
    default_code = "room_not_found"


class RoomUnavailable(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Room is not available for booking."
    default_code = "room_unavailable"


class RoomInUse(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Room has bookings and cannot be deleted. Set its status instead."
    default_code = "room_in_use"


class InvalidStatusTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Booking cannot move to the requested status."
    default_code = "invalid_status_transition"


class PaymentAlreadyConfirmed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This payment has already been confirmed."
    default_code = "payment_already_confirmed"


class RoleUnresolved(PermissionDenied):
    default_detail = "Your role could not be resolved yet."
    default_code = "role_unresolved"


class PersistenceError(APIException):
    """A write to the database failed.

    ``stage`` names the step of the workflow that failed so a partially
    written booking can be traced by staff. ``booking_id`` is set when a
    booking row already exists.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Could not save your request. Please try again."
    default_code = "persistence_error"
    stage = None

    def __init__(self, detail=None, code=None, booking_id=None):
        super().__init__(detail, code)
        self.booking_id = booking_id

    def as_payload(self):
        payload = {
            "detail": str(self.detail),
            "code": self.default_code,
            "stage": self.stage,
        }
        if self.booking_id is not None:
            payload["booking_id"] = self.booking_id
        return payload


class GuestNotCreated(PersistenceError):
    default_detail = (
        "Your guest details could not be saved. No booking was made and no room is being held for you."
    )
    default_code = "guest_not_created"
    stage = "guest"


class BookingNotCreated(PersistenceError):
    default_detail = (
        "Your booking could not be saved. Nothing was kept and no room is being held for you."
    )
    default_code = "booking_not_created"
    stage = "booking"


class PaymentRecordNotCreated(PersistenceError):
    default_detail = (
        "Payment record not created. Your booking may already exist, "
        "please contact staff before trying again."
    )
    default_code = "payment_record_not_created"
    stage = "payment_notification"


class ConfirmationFailed(PersistenceError):
    default_detail = "The payment could not be confirmed. Nothing was changed, please try again."
    default_code = "confirmation_failed"
    stage = "confirmation"


def api_exception_handler(exc, context):
    """DRF exception handler that adds stage details for persistence errors."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, PersistenceError):
        response.data = exc.as_payload()
    return response
