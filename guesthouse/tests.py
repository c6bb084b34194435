from django.test import TestCase, TransactionTestCase
from django.db import DatabaseError, connection
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.exceptions import NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.test import APITestCase
from rest_framework import status
import time
from datetime import timedelta
from decimal import Decimal
from unittest import mock
from concurrent.futures import ThreadPoolExecutor, as_completed

from . import access_codes, services
from .exceptions import (
    BookingNotCreated,
    ConfirmationFailed,
    GuestNotCreated,
    InvalidStatusTransition,
    PaymentAlreadyConfirmed,
    PaymentRecordNotCreated,
    RoleUnresolved,
    RoomNotFound,
    RoomUnavailable,
)
from .models import Booking, Guest, GuestHouseSettings, PaymentNotification, Room, UserRole
from .permissions import SessionContext, can_perform

User = get_user_model()


def make_user(username, role=UserRole.Role.GUEST):
    user = User.objects.create_user(username=username, password="secret-pass-123")
    UserRole.objects.filter(user=user).update(role=role)
    return user


def guest_details(**overrides):
    details = {
        'first_name': 'Ama',
        'last_name': 'Mensah',
        'email': 'ama@example.com',
        'phone': '0241234567',
    }
    details.update(overrides)
    return details


def counts():
    return (Guest.objects.count(), Booking.objects.count(), PaymentNotification.objects.count())


STRONG_PASSWORD = 'Sunny-Veranda-4821'


class PriceComputationTestCase(TestCase):
    """Test total price computation"""

    def test_total_is_price_times_nights(self):
        """Test every allowed stay length against the nightly price"""
        for nights in range(1, 8):
            with self.subTest(nights=nights):
                self.assertEqual(services.compute_total(Decimal('200'), nights), Decimal(200 * nights))

        self.assertEqual(services.compute_total(Decimal('200'), 3), Decimal('600'))

    def test_fractional_prices_do_not_drift(self):
        """Test that fractional prices multiply exactly"""
        self.assertEqual(services.compute_total(Decimal('99.99'), 7), Decimal('699.93'))
        self.assertEqual(services.compute_total(Decimal('0.10'), 3), Decimal('0.30'))


class AccessCodeTestCase(TestCase):
    """Test access code generation and issuing"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))

    def _booking_with_code(self, code, booking_status=Booking.Status.PENDING):
        now = timezone.now()
        return Booking.objects.create(
            room=self.room,
            check_in=now,
            check_out=now + timedelta(days=1),
            nights=1,
            total_amount=Decimal('150'),
            status=booking_status,
            access_code=code,
        )

    def test_code_format(self):
        """Test codes are 6 characters from the keypad alphabet"""
        for _ in range(200):
            code = access_codes.generate_access_code()
            self.assertEqual(len(code), 6)
            self.assertTrue(access_codes.is_well_formed(code), code)

    def test_alphabet_has_no_ambiguous_characters(self):
        for ch in "0O1I":
            self.assertNotIn(ch, access_codes.ALPHABET)
        self.assertEqual(len(set(access_codes.ALPHABET)), 32)

    def test_ten_thousand_codes_rarely_collide(self):
        """Test that 10,000 draws produce close to 10,000 distinct codes"""
        codes = [access_codes.generate_access_code() for _ in range(10000)]
        # Expected collisions over 32**6 codes are about 0.05
        self.assertGreaterEqual(len(set(codes)), 9995)

    def test_issue_redraws_when_code_held_by_active_booking(self):
        self._booking_with_code("ABCDEF")
        with mock.patch.object(access_codes, "generate_access_code", side_effect=["ABCDEF", "GHJKLM"]):
            self.assertEqual(access_codes.issue_access_code(), "GHJKLM")

    def test_code_of_cancelled_booking_can_be_reused(self):
        self._booking_with_code("ABCDEF", Booking.Status.CANCELLED)
        with mock.patch.object(access_codes, "generate_access_code", return_value="ABCDEF"):
            self.assertEqual(access_codes.issue_access_code(), "ABCDEF")

    def test_issue_gives_up_after_repeated_collisions(self):
        self._booking_with_code("ABCDEF")
        with mock.patch.object(access_codes, "generate_access_code", return_value="ABCDEF"):
            with self.assertRaises(access_codes.AccessCodeUnavailable):
                access_codes.issue_access_code()

    def test_normalize(self):
        self.assertEqual(access_codes.normalize("  abcdef "), "ABCDEF")
        self.assertEqual(access_codes.normalize(None), "")


class RoleGateTestCase(TestCase):
    """Test the capability table and session context"""

    def test_public_operations(self):
        for role in (None, "guest", "receptionist", "owner"):
            with self.subTest(role=role):
                self.assertTrue(can_perform(role, "place_booking"))
                self.assertTrue(can_perform(role, "browse_rooms"))
                self.assertTrue(can_perform(role, "register_account"))

    def test_staff_operations(self):
        self.assertTrue(can_perform("receptionist", "confirm_payment"))
        self.assertTrue(can_perform("owner", "confirm_payment"))
        self.assertFalse(can_perform("guest", "confirm_payment"))
        self.assertFalse(can_perform(None, "confirm_payment"))

    def test_owner_operations(self):
        for operation in ("manage_rooms", "manage_staff", "manage_payment_settings", "view_revenue"):
            with self.subTest(operation=operation):
                self.assertTrue(can_perform("owner", operation))
                self.assertFalse(can_perform("receptionist", operation))

    def test_unknown_operation_is_denied(self):
        self.assertFalse(can_perform("owner", "drop_tables"))

    def test_new_user_starts_as_guest(self):
        user = User.objects.create_user(username="newbie", password="x")
        context = SessionContext.for_user(user)
        self.assertEqual(context.role, UserRole.Role.GUEST)
        self.assertTrue(context.is_authenticated)

    def test_anonymous_context(self):
        context = SessionContext()
        self.assertEqual(context.as_dict(), {"user_id": None, "is_authenticated": False, "role": None})


class PlaceBookingTestCase(TestCase):
    """Test the booking workflow"""

    def setUp(self):
        self.room = Room.objects.create(
            name="R1",
            room_type=Room.RoomType.SINGLE,
            price_per_night=Decimal('150'),
            capacity=1,
            floor=1,
        )

    def test_booking_creates_guest_booking_and_payment_notification(self):
        """Test the full happy path for a 2-night stay"""
        placed = services.place_booking(self.room.id, 2, guest_details())

        booking = Booking.objects.get(pk=placed.booking_id)
        self.assertEqual(booking.total_amount, Decimal('300'))
        self.assertEqual(booking.nights, 2)
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PENDING)
        self.assertEqual(booking.access_code, placed.access_code)
        self.assertTrue(access_codes.is_well_formed(placed.access_code))
        self.assertEqual(booking.check_out - booking.check_in, timedelta(days=2))
        self.assertEqual(booking.guest.full_name, "Ama Mensah")

        notification = PaymentNotification.objects.get(booking=booking)
        self.assertEqual(notification.amount, Decimal('300'))
        self.assertEqual(notification.guest_name, "Ama Mensah")
        self.assertEqual(notification.phone_number, "0241234567")
        self.assertFalse(notification.is_confirmed)

    def test_booking_does_not_change_room_status(self):
        services.place_booking(self.room.id, 1, guest_details())
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_unavailable_room_creates_nothing(self):
        """Test that a room not in 'available' status cannot be booked"""
        for room_status in (Room.Status.OCCUPIED, Room.Status.RESERVED, Room.Status.CLEANING):
            with self.subTest(status=room_status):
                self.room.status = room_status
                self.room.save()
                with self.assertRaises(RoomUnavailable):
                    services.place_booking(self.room.id, 2, guest_details())
                self.assertEqual(counts(), (0, 0, 0))

    def test_missing_room(self):
        with self.assertRaises(RoomNotFound):
            services.place_booking(9999, 1, guest_details())
        self.assertEqual(counts(), (0, 0, 0))

    def test_invalid_guest_details(self):
        """Test that malformed guest fields are rejected before any write"""
        invalid = [
            guest_details(first_name=''),
            guest_details(last_name=''),
            guest_details(phone=''),
            guest_details(email='not-an-email'),
        ]
        for details in invalid:
            with self.subTest(details=details):
                with self.assertRaises(ValidationError):
                    services.place_booking(self.room.id, 1, details)
        self.assertEqual(counts(), (0, 0, 0))

    def test_nights_out_of_range(self):
        for nights in (0, 8):
            with self.subTest(nights=nights):
                with self.assertRaises(ValidationError):
                    services.place_booking(self.room.id, nights, guest_details())
        self.assertEqual(counts(), (0, 0, 0))

    def test_max_nights_follows_settings(self):
        with self.settings(GUESTHOUSE_MAX_NIGHTS=14):
            placed = services.place_booking(self.room.id, 10, guest_details())
        self.assertEqual(placed.booking.total_amount, Decimal('1500'))

    def test_overlapping_stay_is_rejected(self):
        """Test that a second booking over the same nights is rejected"""
        services.place_booking(self.room.id, 3, guest_details())

        with self.assertRaises(RoomUnavailable):
            services.place_booking(self.room.id, 1, guest_details(first_name='Kofi'))
        self.assertEqual(Booking.objects.count(), 1)

    def test_back_to_back_stays_are_allowed(self):
        check_in = timezone.now() + timedelta(days=1)
        services.place_booking(self.room.id, 2, guest_details(), check_in=check_in)
        placed = services.place_booking(
            self.room.id, 2, guest_details(first_name='Kofi'), check_in=check_in + timedelta(days=2)
        )
        self.assertEqual(Booking.objects.count(), 2)
        self.assertEqual(placed.booking.status, Booking.Status.PENDING)

    def test_cancelled_booking_frees_the_dates(self):
        first = services.place_booking(self.room.id, 2, guest_details())
        Booking.objects.filter(pk=first.booking_id).update(status=Booking.Status.CANCELLED)

        services.place_booking(self.room.id, 2, guest_details(first_name='Kofi'))
        self.assertEqual(Booking.objects.count(), 2)

    def test_guests_are_always_inserted_fresh(self):
        check_in = timezone.now() + timedelta(days=1)
        services.place_booking(self.room.id, 1, guest_details(), check_in=check_in)
        services.place_booking(self.room.id, 1, guest_details(), check_in=check_in + timedelta(days=5))
        self.assertEqual(Guest.objects.filter(phone='0241234567').count(), 2)

    def test_authenticated_caller_is_linked_to_booking(self):
        user = make_user("ama")
        placed = services.place_booking(self.room.id, 1, guest_details(), context=SessionContext.for_user(user))
        self.assertEqual(placed.booking.user, user)

    def test_payment_instructions_come_with_result(self):
        settings_row = GuestHouseSettings.objects.create(payment_account_number="0551112222")
        placed = services.place_booking(self.room.id, 1, guest_details())
        self.assertEqual(placed.payment_settings, settings_row)

    def test_payment_notification_failure_is_reported_distinctly(self):
        """Test that a failing payment record leaves guest and booking, and says so"""
        with mock.patch.object(PaymentNotification.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(PaymentRecordNotCreated) as ctx:
                services.place_booking(self.room.id, 2, guest_details())

        self.assertEqual(counts(), (1, 1, 0))
        self.assertEqual(ctx.exception.stage, "payment_notification")
        self.assertEqual(ctx.exception.booking_id, Booking.objects.get().pk)
        self.assertIn("Payment record not created", str(ctx.exception.detail))

    def test_booking_failure_keeps_no_guest(self):
        """Test that a failed booking write rolls the guest back with it"""
        with mock.patch.object(Booking.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(BookingNotCreated) as ctx:
                services.place_booking(self.room.id, 2, guest_details())

        self.assertEqual(counts(), (0, 0, 0))
        self.assertEqual(ctx.exception.stage, "booking")

    def test_room_taken_between_checks_writes_nothing(self):
        """Test that the locked re-check runs before any row is written"""
        real_check = services._check_room_bookable
        calls = []

        def check_then_lose_room(room, check_in, check_out):
            calls.append(room.pk)
            real_check(room, check_in, check_out)
            if len(calls) == 1:
                # Someone else takes the room right after the unlocked check
                Room.objects.filter(pk=room.pk).update(status=Room.Status.OCCUPIED)

        with mock.patch.object(services, "_check_room_bookable", side_effect=check_then_lose_room):
            with self.assertRaises(RoomUnavailable):
                services.place_booking(self.room.id, 2, guest_details())

        self.assertEqual(len(calls), 2)
        self.assertEqual(counts(), (0, 0, 0))

    def test_access_code_exhaustion_keeps_no_guest(self):
        with mock.patch.object(services, "issue_access_code", side_effect=access_codes.AccessCodeUnavailable()):
            with self.assertRaises(BookingNotCreated):
                services.place_booking(self.room.id, 1, guest_details())
        self.assertEqual(counts(), (0, 0, 0))

    def test_guest_failure_stops_everything(self):
        with mock.patch.object(Guest.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(GuestNotCreated):
                services.place_booking(self.room.id, 2, guest_details())
        self.assertEqual(counts(), (0, 0, 0))


class PaymentConfirmationTestCase(TestCase):
    """Test payment confirmation and booking status changes"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))
        self.placed = services.place_booking(self.room.id, 2, guest_details())
        self.booking = self.placed.booking
        self.notification = self.placed.payment_notification
        self.receptionist = make_user("desk", UserRole.Role.RECEPTIONIST)
        self.context = SessionContext.for_user(self.receptionist)

    def test_confirmation_confirms_notification_and_booking(self):
        services.confirm_payment(self.notification.pk, self.booking.pk, self.context)

        self.booking.refresh_from_db()
        self.notification.refresh_from_db()
        self.assertTrue(self.notification.is_confirmed)
        self.assertEqual(self.notification.confirmed_by, self.receptionist)
        self.assertIsNotNone(self.notification.confirmed_at)
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(self.booking.payment_status, Booking.PaymentStatus.CONFIRMED)

    def test_owner_may_confirm(self):
        owner = make_user("boss", UserRole.Role.OWNER)
        services.confirm_payment(self.notification.pk, self.booking.pk, SessionContext.for_user(owner))
        self.notification.refresh_from_db()
        self.assertEqual(self.notification.confirmed_by, owner)

    def test_second_confirmation_is_rejected_without_overwriting(self):
        """Test that confirming twice keeps the first confirmer and time"""
        services.confirm_payment(self.notification.pk, self.booking.pk, self.context)
        self.notification.refresh_from_db()
        first_by, first_at = self.notification.confirmed_by_id, self.notification.confirmed_at

        other = make_user("desk2", UserRole.Role.RECEPTIONIST)
        with self.assertRaises(PaymentAlreadyConfirmed):
            services.confirm_payment(self.notification.pk, self.booking.pk, SessionContext.for_user(other))

        self.notification.refresh_from_db()
        self.assertEqual(self.notification.confirmed_by_id, first_by)
        self.assertEqual(self.notification.confirmed_at, first_at)

    def test_unauthenticated_caller_is_rejected_before_mutation(self):
        for context in (None, SessionContext()):
            with self.subTest(context=context):
                with self.assertRaises(NotAuthenticated):
                    services.confirm_payment(self.notification.pk, self.booking.pk, context)

        self.notification.refresh_from_db()
        self.booking.refresh_from_db()
        self.assertFalse(self.notification.is_confirmed)
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_guest_role_is_rejected(self):
        guest_user = make_user("visitor")
        with self.assertRaises(PermissionDenied):
            services.confirm_payment(self.notification.pk, self.booking.pk, SessionContext.for_user(guest_user))
        self.notification.refresh_from_db()
        self.assertFalse(self.notification.is_confirmed)

    def test_unresolved_role_is_rejected(self):
        UserRole.objects.filter(user=self.receptionist).delete()
        context = SessionContext.for_user(self.receptionist)
        self.assertIsNone(context.role)
        with self.assertRaises(RoleUnresolved):
            services.confirm_payment(self.notification.pk, self.booking.pk, context)

    def test_role_is_rechecked_at_mutation_time(self):
        """Test that a context built before demotion is not trusted blindly"""
        UserRole.objects.filter(user=self.receptionist).update(role=UserRole.Role.GUEST)
        with self.assertRaises(PermissionDenied):
            services.confirm_payment(
                self.notification.pk, self.booking.pk, SessionContext.for_user(self.receptionist)
            )

    def test_booking_update_failure_rolls_back_notification(self):
        """Test that both rows change together or not at all"""
        with mock.patch.object(Booking, "save", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(ConfirmationFailed):
                services.confirm_payment(self.notification.pk, self.booking.pk, self.context)

        self.notification.refresh_from_db()
        self.booking.refresh_from_db()
        self.assertFalse(self.notification.is_confirmed)
        self.assertIsNone(self.notification.confirmed_by)
        self.assertEqual(self.booking.payment_status, Booking.PaymentStatus.PENDING)

    def test_notification_must_belong_to_booking(self):
        with self.assertRaises(ValidationError):
            services.confirm_payment(self.notification.pk, self.booking.pk + 100, self.context)
        self.notification.refresh_from_db()
        self.assertFalse(self.notification.is_confirmed)

    def test_cancelled_booking_cannot_be_confirmed(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED)
        with self.assertRaises(InvalidStatusTransition):
            services.confirm_payment(self.notification.pk, self.booking.pk, self.context)
        self.notification.refresh_from_db()
        self.assertFalse(self.notification.is_confirmed)


class FrontDeskTestCase(TestCase):
    """Test check-in, check-out and cancellation"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))
        self.placed = services.place_booking(self.room.id, 2, guest_details())
        self.booking = self.placed.booking
        self.context = SessionContext.for_user(make_user("desk", UserRole.Role.RECEPTIONIST))

    def _confirm(self):
        services.confirm_payment(self.placed.payment_notification.pk, self.booking.pk, self.context)

    def test_full_stay(self):
        self._confirm()
        booking = services.advance_booking(self.booking.pk, "check_in", self.context)
        self.assertEqual(booking.status, Booking.Status.CHECKED_IN)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.OCCUPIED)

        booking = services.advance_booking(self.booking.pk, "check_out", self.context)
        self.assertEqual(booking.status, Booking.Status.CHECKED_OUT)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.CLEANING)

    def test_cannot_check_in_unpaid_booking(self):
        with self.assertRaises(InvalidStatusTransition):
            services.advance_booking(self.booking.pk, "check_in", self.context)

    def test_cancel_pending_booking(self):
        booking = services.advance_booking(self.booking.pk, "cancel_booking", self.context)
        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PENDING)

    def test_cancel_paid_booking_marks_refund(self):
        self._confirm()
        booking = services.advance_booking(self.booking.pk, "cancel_booking", self.context)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.REFUNDED)

    def test_checked_out_booking_cannot_be_cancelled(self):
        self._confirm()
        services.advance_booking(self.booking.pk, "check_in", self.context)
        services.advance_booking(self.booking.pk, "check_out", self.context)
        with self.assertRaises(InvalidStatusTransition):
            services.advance_booking(self.booking.pk, "cancel_booking", self.context)


class RevenueTestCase(TestCase):

    def test_revenue_counts_only_confirmed_payments(self):
        room_a = Room.objects.create(name="A", price_per_night=Decimal('150'))
        room_b = Room.objects.create(name="B", price_per_night=Decimal('200'))
        desk = SessionContext.for_user(make_user("desk", UserRole.Role.RECEPTIONIST))
        paid = services.place_booking(room_a.id, 2, guest_details())
        services.place_booking(room_b.id, 1, guest_details())
        services.confirm_payment(paid.payment_notification.pk, paid.booking_id, desk)

        summary = services.revenue_summary(SessionContext.for_user(make_user("boss", UserRole.Role.OWNER)))
        self.assertEqual(summary["total_revenue"], Decimal('300'))
        self.assertEqual(summary["total_bookings"], 1)
        self.assertEqual(summary["room_breakdown"][0]["room_name"], "A")

    def test_receptionist_cannot_view_revenue(self):
        with self.assertRaises(PermissionDenied):
            services.revenue_summary(SessionContext.for_user(make_user("desk", UserRole.Role.RECEPTIONIST)))


class RaceConditionTestCase(TransactionTestCase):
    """Test concurrent booking attempts on one room"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))
        self.check_in = timezone.now() + timedelta(days=1)

    def test_concurrent_booking_attempts_do_not_double_book(self):
        """Exactly one of several simultaneous attempts gets the room"""

        def attempt(n):
            try:
                # Table locks on the shared test database surface as database
                # errors, which the guest simply retries
                for _ in range(50):
                    try:
                        services.place_booking(
                            self.room.id, 2, guest_details(first_name=f'Guest{n}'), check_in=self.check_in
                        )
                        return "booked"
                    except (GuestNotCreated, BookingNotCreated, DatabaseError):
                        time.sleep(0.02)
                return "gave up"
            except RoomUnavailable:
                return "unavailable"
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [executor.submit(attempt, n) for n in range(4)]
            results = [future.result() for future in as_completed(futures)]

        self.assertEqual(results.count("booked"), 1, results)
        self.assertEqual(results.count("unavailable"), 3, results)
        self.assertEqual(
            Booking.objects.filter(room=self.room, status__in=Booking.ACTIVE_STATUSES).count(), 1
        )
        self.assertEqual(Guest.objects.count(), 1)


class BookingApiTestCase(APITestCase):
    """Test the booking endpoints"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))
        GuestHouseSettings.objects.create(
            payment_account_number="0551112222",
            payment_account_name="Guest House",
        )
        self.receptionist = make_user("desk", UserRole.Role.RECEPTIONIST)

    def _place(self, nights=2):
        return self.client.post('/api/bookings/', {
            'room_id': self.room.id,
            'nights': nights,
            'guest': guest_details(),
        }, format='json')

    def test_place_booking_anonymously(self):
        response = self._place()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(len(response.data['access_code']), 6)
        self.assertEqual(response.data['booking']['total_amount'], '300.00')
        self.assertEqual(response.data['booking']['status'], 'pending')
        self.assertEqual(response.data['payment_instructions']['account_number'], '0551112222')

    def test_money_renders_as_decimal_strings(self):
        self.room.price_per_night = Decimal('150.10')
        self.room.save()
        body = self._place(nights=3).json()
        self.assertEqual(body['booking']['total_amount'], '450.30')
        self.assertEqual(body['payment_instructions']['amount'], '450.30')
        self.assertTrue(body['payment_instructions']['amount_display'].endswith(' 450.30'))

    def test_place_booking_validation_error(self):
        response = self.client.post('/api/bookings/', {
            'room_id': self.room.id,
            'nights': 2,
            'guest': guest_details(email='nope'),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(counts(), (0, 0, 0))

    def test_place_booking_on_unavailable_room(self):
        self.room.status = Room.Status.CLEANING
        self.room.save()
        response = self._place()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'].code, 'room_unavailable')

    def test_partial_booking_error_payload(self):
        with mock.patch.object(PaymentNotification.objects, "create", side_effect=DatabaseError("down")):
            response = self._place()
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['stage'], 'payment_notification')
        self.assertEqual(response.data['booking_id'], Booking.objects.get().pk)

    def test_lookup_by_access_code(self):
        code = self._place().data['access_code']
        response = self.client.get('/api/bookings/lookup/', {'access_code': code.lower()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['room_name'], 'R1')
        self.assertNotIn('guest', response.data)

        response = self.client.get('/api/bookings/lookup/', {'access_code': 'bad'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('detail', response.data)

    def test_lookup_unknown_code(self):
        response = self.client.get('/api/bookings/lookup/', {'access_code': 'ABCDEF'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['detail'], 'Booking not found.')

    def test_booking_list_requires_staff(self):
        self._place()
        response = self.client.get('/api/bookings/')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

        self.client.force_authenticate(user=make_user("visitor"))
        response = self.client.get('/api/bookings/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.receptionist)
        response = self.client.get('/api/bookings/', {'status': 'pending'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_confirm_then_check_in_via_api(self):
        placed = self._place().data
        self.client.force_authenticate(user=self.receptionist)

        url = f"/api/payment-notifications/{placed['payment_notification_id']}/confirm/"
        response = self.client.post(url, {'booking_id': placed['booking_id']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertEqual(response.data['payment_status'], 'confirmed')
        self.assertTrue(response.data['notification']['is_confirmed'])

        response = self.client.post(url, {'booking_id': placed['booking_id']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f"/api/bookings/{placed['booking_id']}/check_in/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'checked_in')

    def test_anonymous_confirm_is_rejected(self):
        placed = self._place().data
        url = f"/api/payment-notifications/{placed['payment_notification_id']}/confirm/"
        response = self.client.post(url, {'booking_id': placed['booking_id']}, format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(PaymentNotification.objects.get().is_confirmed)

    def test_pending_notifications_filter(self):
        self._place()
        self.client.force_authenticate(user=self.receptionist)
        response = self.client.get('/api/payment-notifications/', {'is_confirmed': 'false'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)


class RoomApiTestCase(APITestCase):
    """Test room catalog and management endpoints"""

    def setUp(self):
        self.room = Room.objects.create(name="R1", price_per_night=Decimal('150'))
        Room.objects.create(name="R2", price_per_night=Decimal('200'), status=Room.Status.OCCUPIED)
        self.owner = make_user("boss", UserRole.Role.OWNER)
        self.receptionist = make_user("desk", UserRole.Role.RECEPTIONIST)

    def test_browse_rooms(self):
        response = self.client.get('/api/rooms/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['name'] for r in response.data], ['R1', 'R2'])

        response = self.client.get('/api/rooms/', {'status': 'available'})
        self.assertEqual([r['name'] for r in response.data], ['R1'])

    def test_only_owner_creates_rooms(self):
        payload = {'name': 'R3', 'room_type': 'suite', 'price_per_night': '350.00', 'capacity': 2, 'floor': 2}

        self.client.force_authenticate(user=self.receptionist)
        response = self.client.post('/api/rooms/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.owner)
        response = self.client.post('/api/rooms/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_room_with_bookings_cannot_be_deleted(self):
        services.place_booking(self.room.id, 1, guest_details())
        self.client.force_authenticate(user=self.owner)
        response = self.client.delete(f'/api/rooms/{self.room.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'room_in_use')
        self.assertTrue(Room.objects.filter(pk=self.room.pk).exists())

    def test_receptionist_sets_room_status(self):
        self.client.force_authenticate(user=self.receptionist)
        response = self.client.post(f'/api/rooms/{self.room.id}/set_status/', {'status': 'cleaning'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.CLEANING)


class OwnerApiTestCase(APITestCase):
    """Test staff, payment settings, revenue and session endpoints"""

    def setUp(self):
        self.owner = make_user("boss", UserRole.Role.OWNER)
        self.client.force_authenticate(user=self.owner)

    def test_grant_and_revoke_staff_role(self):
        user = make_user("newdesk")
        response = self.client.post('/api/staff/', {'user_id': user.pk, 'role': 'receptionist'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        response = self.client.get('/api/staff/')
        self.assertEqual({s['username'] for s in response.data}, {'boss', 'newdesk'})

        response = self.client.delete(f'/api/staff/{user.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(UserRole.objects.get(user=user).role, UserRole.Role.GUEST)

    def test_owner_cannot_revoke_self(self):
        response = self.client.delete(f'/api/staff/{self.owner.pk}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_owner_cannot_change_own_role(self):
        response = self.client.post('/api/staff/', {'user_id': self.owner.pk, 'role': 'receptionist'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(UserRole.objects.get(user=self.owner).role, UserRole.Role.OWNER)

    def test_onboard_staff_account(self):
        response = self.client.post('/api/staff/onboard/', {
            'email': 'Efua@Example.com',
            'password': STRONG_PASSWORD,
            'first_name': 'Efua',
            'last_name': 'Owusu',
            'role': 'receptionist',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['role'], 'receptionist')
        self.assertEqual(response.data['name'], 'Efua Owusu')

        user = User.objects.get(email='efua@example.com')
        self.assertTrue(user.check_password(STRONG_PASSWORD))
        self.assertEqual(SessionContext.for_user(user).role, UserRole.Role.RECEPTIONIST)

    def test_onboarding_is_owner_only(self):
        payload = {
            'email': 'kwame@example.com',
            'password': STRONG_PASSWORD,
            'first_name': 'Kwame',
            'last_name': 'Boateng',
            'role': 'owner',
        }
        self.client.force_authenticate(user=make_user("desk", UserRole.Role.RECEPTIONIST))
        response = self.client.post('/api/staff/onboard/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=None)
        response = self.client.post('/api/staff/onboard/', payload, format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(User.objects.filter(email='kwame@example.com').exists())

    def test_guest_role_cannot_be_granted_through_staff(self):
        user = make_user("someone")
        response = self.client.post('/api/staff/', {'user_id': user.pk, 'role': 'guest'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_payment_settings(self):
        self.client.force_authenticate(user=None)
        response = self.client.get('/api/payment-settings/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['detail'], 'Payment settings not configured.')

        self.client.force_authenticate(user=self.owner)
        response = self.client.put('/api/payment-settings/', {
            'payment_account_number': '0559998888',
            'payment_account_name': 'Guest House Ltd',
            'payment_provider': 'MTN Mobile Money',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

        self.client.force_authenticate(user=None)
        response = self.client.get('/api/payment-settings/')
        self.assertEqual(response.data['payment_account_number'], '0559998888')

    def test_revenue_endpoint(self):
        response = self.client.get('/api/revenue/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_bookings'], 0)
        self.assertEqual(response.json()['total_revenue'], '0.00')

    def test_revenue_amounts_render_as_decimal_strings(self):
        room = Room.objects.create(name="A", price_per_night=Decimal('150.10'))
        placed = services.place_booking(room.id, 3, guest_details())
        services.confirm_payment(placed.payment_notification.pk, placed.booking_id, SessionContext.for_user(self.owner))

        body = self.client.get('/api/revenue/').json()
        self.assertEqual(body['total_revenue'], '450.30')
        self.assertEqual(body['total_bookings'], 1)
        self.assertEqual(body['room_breakdown'], [
            {'room_id': room.id, 'room_name': 'A', 'revenue': '450.30', 'bookings': 1},
        ])

    def test_session_endpoint(self):
        response = self.client.get('/api/session/')
        self.assertEqual(response.data, {'user_id': self.owner.pk, 'is_authenticated': True, 'role': 'owner'})

        self.client.force_authenticate(user=None)
        response = self.client.get('/api/session/')
        self.assertEqual(response.data['role'], None)
        self.assertFalse(response.data['is_authenticated'])


class RegistrationApiTestCase(APITestCase):
    """Test guest self sign up"""

    def _register(self, **overrides):
        payload = {
            'email': 'kofi@example.com',
            'password': STRONG_PASSWORD,
            'first_name': 'Kofi',
            'last_name': 'Asante',
        }
        payload.update(overrides)
        return self.client.post('/api/register/', payload, format='json')

    def test_register_creates_guest_account(self):
        response = self._register()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['role'], 'guest')
        self.assertEqual(response.data['name'], 'Kofi Asante')
        self.assertNotIn('password', response.data)

        self.assertTrue(self.client.login(username='kofi@example.com', password=STRONG_PASSWORD))
        response = self.client.get('/api/session/')
        self.assertEqual(response.data['role'], 'guest')

    def test_duplicate_email_is_rejected(self):
        self._register()
        response = self._register(email='KOFI@example.com')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)
        self.assertEqual(User.objects.count(), 1)

    def test_weak_password_is_rejected(self):
        for password in ('short', '12345678901', 'password'):
            with self.subTest(password=password):
                response = self._register(password=password)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn('password', response.data)
        self.assertFalse(User.objects.exists())

    def test_missing_name_is_rejected(self):
        response = self._register(first_name='')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('first_name', response.data)
