import logging
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework import serializers
from rest_framework.exceptions import NotFound

from .access_codes import AccessCodeUnavailable, issue_access_code
from .exceptions import (
    BookingNotCreated,
    ConfirmationFailed,
    GuestNotCreated,
    InvalidStatusTransition,
    PaymentAlreadyConfirmed,
    PaymentRecordNotCreated,
    RoomNotFound,
    RoomUnavailable,
)
from .models import Booking, Guest, GuestHouseSettings, PaymentNotification, Room, UserRole
from .permissions import ensure_permitted
from .serializers import PlaceBookingSerializer

logger = logging.getLogger(__name__)


class PlacedBooking:
    """Outcome of a successful ``place_booking`` call."""

    def __init__(self, booking, payment_notification, payment_settings=None):
        self.booking = booking
        self.payment_notification = payment_notification
        self.payment_settings = payment_settings

    @property
    def booking_id(self):
        return self.booking.pk

    @property
    def access_code(self):
        return self.booking.access_code


def compute_total(price_per_night, nights):
    # Decimal all the way, prices never pass through float
    return Decimal(price_per_night) * int(nights)


def overlapping_bookings(room, check_in, check_out):
    return Booking.objects.filter(
        room=room,
        status__in=Booking.ACTIVE_STATUSES,
        check_in__lt=check_out,
        check_out__gt=check_in,
    )


def _check_room_bookable(room, check_in, check_out):
    if room.status != Room.Status.AVAILABLE:
        raise RoomUnavailable(f"Room {room.name} is {room.status} and cannot be booked.")
    if overlapping_bookings(room, check_in, check_out).exists():
        raise RoomUnavailable(f"Room {room.name} is already booked for the selected dates.")


def place_booking(room_id, nights, guest_details, context=None, check_in=None, transaction_reference=None):
    """Create the guest, the booking and its payment notification, in that order.

    The room row is locked and its availability re-checked before anything
    is written. The guest and the booking are then saved in that same
    transaction, so a guest row never outlives a failed booking. The
    payment notification is a separate write. A failure at any stage raises
    the stage-specific ``PersistenceError``; the payment stage reports the
    ``booking_id`` that was already saved. Nothing is written when
    validation fails.
    """
    ensure_permitted(context, "place_booking")

    booking_input = PlaceBookingSerializer(data={
        "room_id": room_id,
        "nights": nights,
        "guest": guest_details,
    })
    booking_input.is_valid(raise_exception=True)
    nights = booking_input.validated_data["nights"]
    guest_data = booking_input.validated_data["guest"]

    room = Room.objects.filter(pk=room_id).first()
    if room is None:
        raise RoomNotFound()

    check_in = check_in or timezone.now()
    check_out = check_in + timedelta(days=nights)
    _check_room_bookable(room, check_in, check_out)

    total = compute_total(room.price_per_night, nights)

    stage = "guest"
    try:
        with transaction.atomic():
            room = Room.objects.select_for_update().get(pk=room.pk)
            try:
                _check_room_bookable(room, check_in, check_out)
            except RoomUnavailable:
                logger.warning("Room %s was taken before the booking could be saved", room.pk)
                raise
            guest = Guest.objects.create(**guest_data)
            stage = "booking"
            booking = Booking.objects.create(
                room=room,
                guest=guest,
                user=context.user if context is not None and context.is_authenticated else None,
                check_in=check_in,
                check_out=check_out,
                nights=nights,
                total_amount=total,
                status=Booking.Status.PENDING,
                payment_status=Booking.PaymentStatus.PENDING,
                access_code=issue_access_code(),
            )
    except (DatabaseError, AccessCodeUnavailable):
        logger.exception("Saving the %s failed for room %s, rolled back", stage, room.pk)
        if stage == "guest":
            raise GuestNotCreated()
        raise BookingNotCreated()

    # Payment notification
    try:
        notification = PaymentNotification.objects.create(
            booking=booking,
            guest_name=guest.full_name,
            amount=total,
            phone_number=guest.phone,
            transaction_reference=transaction_reference or None,
        )
    except DatabaseError:
        logger.exception("Payment notification creation failed for booking %s", booking.pk)
        raise PaymentRecordNotCreated(booking_id=booking.pk)

    logger.info("Booking %s placed for room %s, %s night(s), total %s", booking.pk, room.pk, nights, total)
    return PlacedBooking(booking, notification, GuestHouseSettings.current())


def confirm_payment(notification_id, booking_id, context):
    """Mark a payment notification confirmed and confirm its booking.

    Both rows change in one transaction. A notification that is already
    confirmed is rejected and keeps its first ``confirmed_by`` and
    ``confirmed_at``.
    """
    ensure_permitted(context, "confirm_payment")

    try:
        with transaction.atomic():
            notification = (
                PaymentNotification.objects.select_for_update()
                .filter(pk=notification_id)
                .first()
            )
            if notification is None:
                raise NotFound("Payment notification not found.")
            if str(notification.booking_id) != str(booking_id):
                raise serializers.ValidationError(
                    {"booking_id": "Payment notification does not belong to this booking."}
                )
            if notification.is_confirmed:
                logger.warning(
                    "Rejected second confirmation of notification %s by user %s",
                    notification.pk, context.user_id,
                )
                raise PaymentAlreadyConfirmed()

            booking = Booking.objects.select_for_update().get(pk=notification.booking_id)
            if booking.status not in (Booking.Status.PENDING, Booking.Status.CONFIRMED):
                raise InvalidStatusTransition(f"Cannot confirm payment for a {booking.status} booking.")

            notification.is_confirmed = True
            notification.confirmed_by = context.user
            notification.confirmed_at = timezone.now()
            notification.save(update_fields=["is_confirmed", "confirmed_by", "confirmed_at"])

            booking.payment_status = Booking.PaymentStatus.CONFIRMED
            booking.status = Booking.Status.CONFIRMED
            booking.save(update_fields=["payment_status", "status", "updated_at"])
    except DatabaseError:
        logger.exception("Confirming notification %s failed, rolled back", notification_id)
        raise ConfirmationFailed(booking_id=booking_id)

    logger.info("Payment %s for booking %s confirmed by user %s", notification.pk, booking.pk, context.user_id)
    return notification, booking


# operation -> (statuses it may start from, resulting status)
FRONT_DESK_TRANSITIONS = {
    "check_in": ((Booking.Status.CONFIRMED,), Booking.Status.CHECKED_IN),
    "check_out": ((Booking.Status.CHECKED_IN,), Booking.Status.CHECKED_OUT),
    "cancel_booking": ((Booking.Status.PENDING, Booking.Status.CONFIRMED), Booking.Status.CANCELLED),
}

# Room status that follows a front-desk action
ROOM_STATUS_AFTER = {
    "check_in": Room.Status.OCCUPIED,
    "check_out": Room.Status.CLEANING,
}


def advance_booking(booking_id, operation, context):
    """Apply a front-desk action (check in, check out, cancel) to a booking."""
    ensure_permitted(context, operation)
    allowed_from, target = FRONT_DESK_TRANSITIONS[operation]

    with transaction.atomic():
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.status not in allowed_from:
            raise InvalidStatusTransition(f"Cannot {operation.replace('_', ' ')} a {booking.status} booking.")

        previous = booking.status
        booking.status = target
        if target == Booking.Status.CANCELLED and booking.payment_status == Booking.PaymentStatus.CONFIRMED:
            booking.payment_status = Booking.PaymentStatus.REFUNDED
        booking.save(update_fields=["status", "payment_status", "updated_at"])

        room_status = ROOM_STATUS_AFTER.get(operation)
        if room_status:
            Room.objects.filter(pk=booking.room_id).update(status=room_status, updated_at=timezone.now())

    logger.info("Booking %s moved from %s to %s by user %s", booking.pk, previous, target, context.user_id)
    return booking


def set_room_status(room_id, status, context):
    ensure_permitted(context, "update_room_status")
    room = Room.objects.filter(pk=room_id).first()
    if room is None:
        raise NotFound("Room not found.")
    room.status = status
    room.save(update_fields=["status", "updated_at"])
    logger.info("Room %s set to %s by user %s", room.pk, status, context.user_id)
    return room


def grant_role(user, role, context):
    ensure_permitted(context, "manage_staff")
    if user.pk == context.user_id:
        raise serializers.ValidationError("You cannot change your own role.")
    user_role, _ = UserRole.objects.update_or_create(user=user, defaults={"role": role})
    logger.info("User %s granted role %s by user %s", user.pk, role, context.user_id)
    return user_role


def _create_account(email, password, first_name, last_name):
    # The post_save signal gives every new account the guest role
    return get_user_model().objects.create_user(
        username=email,
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
    )


def register_account(data, context=None):
    """Self-service sign up. The new account is a guest."""
    ensure_permitted(context, "register_account")
    user = _create_account(data["email"], data["password"], data["first_name"], data["last_name"])
    logger.info("Account %s registered", user.pk)
    return user


def create_staff_account(data, context):
    """Owner onboards a receptionist or another owner with a new login."""
    ensure_permitted(context, "manage_staff")
    with transaction.atomic():
        user = _create_account(data["email"], data["password"], data["first_name"], data["last_name"])
        user_role, _ = UserRole.objects.update_or_create(user=user, defaults={"role": data["role"]})
    logger.info("Staff account %s created with role %s by user %s", user.pk, data["role"], context.user_id)
    return user_role


def revoke_role(user, context):
    """Demote a staff member back to guest."""
    ensure_permitted(context, "manage_staff")
    if user.pk == context.user_id:
        raise serializers.ValidationError("You cannot revoke your own role.")
    user_role, _ = UserRole.objects.update_or_create(user=user, defaults={"role": UserRole.Role.GUEST})
    logger.info("User %s demoted to guest by user %s", user.pk, context.user_id)
    return user_role


def update_payment_settings(data, context):
    ensure_permitted(context, "manage_payment_settings")
    current = GuestHouseSettings.current()
    if current is None:
        return GuestHouseSettings.objects.create(**data)
    for attr, value in data.items():
        setattr(current, attr, value)
    current.save()
    return current


def revenue_summary(context):
    """Totals over bookings whose payment has been confirmed."""
    ensure_permitted(context, "view_revenue")
    paid = Booking.objects.filter(payment_status=Booking.PaymentStatus.CONFIRMED)
    totals = paid.aggregate(revenue=Sum("total_amount"), bookings=Count("id"))
    per_room = (
        paid.values("room_id", "room__name")
        .annotate(revenue=Sum("total_amount"), bookings=Count("id"))
        .order_by("room__name")
    )
    room_count = Room.objects.count()
    occupied = Room.objects.filter(status=Room.Status.OCCUPIED).count()
    return {
        "total_revenue": totals["revenue"] or Decimal("0"),
        "total_bookings": totals["bookings"],
        "occupancy_rate": round(occupied / room_count, 4) if room_count else 0.0,
        "room_breakdown": [
            {
                "room_id": row["room_id"],
                "room_name": row["room__name"],
                "revenue": row["revenue"],
                "bookings": row["bookings"],
            }
            for row in per_room
        ],
    }
