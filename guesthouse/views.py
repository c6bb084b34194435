import logging

from django.contrib.auth import get_user_model, logout
from django.db.models import ProtectedError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ParseError
from rest_framework.response import Response
from rest_framework.views import APIView

from . import access_codes, services
from .exceptions import RoomInUse
from .models import Booking, GuestHouseSettings, PaymentNotification, Room, UserRole
from .permissions import RolePermission, SessionContext, ensure_permitted
from .serializers import (
    AccountSerializer,
    BookingSerializer,
    BookingSummarySerializer,
    ConfirmPaymentSerializer,
    GrantRoleSerializer,
    PaymentInstructionsSerializer,
    PaymentNotificationSerializer,
    PaymentSettingsSerializer,
    PlaceBookingSerializer,
    RegisterAccountSerializer,
    RevenueSummarySerializer,
    RoomSerializer,
    RoomStatusSerializer,
    StaffAccountSerializer,
    StaffSerializer,
)

logger = logging.getLogger(__name__)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Guest House Booking API"})


def health_check(request):
    return JsonResponse({"status": "ok"})


def payment_instructions(payment_settings, amount):
    if payment_settings is None:
        return None
    return PaymentInstructionsSerializer({
        "provider": payment_settings.payment_provider,
        "account_number": payment_settings.payment_account_number,
        "account_name": payment_settings.payment_account_name,
        "amount": amount,
    }).data


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.all()
    serializer_class = RoomSerializer
    permission_classes = [RolePermission]
    operations = {
        "list": "browse_rooms",
        "retrieve": "browse_rooms",
        "create": "manage_rooms",
        "update": "manage_rooms",
        "partial_update": "manage_rooms",
        "destroy": "manage_rooms",
        "set_status": "update_room_status",
    }

    def get_queryset(self):
        """Rooms ordered by name, optionally filtered by status or type"""
        qs = Room.objects.all().order_by("name")
        room_status = self.request.query_params.get("status")
        room_type = self.request.query_params.get("room_type")
        if room_status:
            qs = qs.filter(status=room_status)
        if room_type:
            qs = qs.filter(room_type=room_type)
        return qs

    def perform_create(self, serializer):
        ensure_permitted(SessionContext.from_request(self.request), "manage_rooms")
        room = serializer.save()
        logger.info("Room %s created", room.pk)

    def perform_update(self, serializer):
        ensure_permitted(SessionContext.from_request(self.request), "manage_rooms")
        serializer.save()

    def destroy(self, request, pk=None, **kwargs):
        room = self.get_object()
        ensure_permitted(SessionContext.from_request(request), "manage_rooms")
        try:
            room.delete()
        except ProtectedError:
            raise RoomInUse()
        logger.info("Room %s deleted", pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def set_status(self, request, pk=None):
        """Front desk sets available / occupied / reserved / cleaning"""
        serializer = RoomStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        room = services.set_room_status(
            pk, serializer.validated_data["status"], SessionContext.from_request(request)
        )
        return Response(RoomSerializer(room).data)


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Booking.objects.select_related("room", "guest")
    serializer_class = BookingSerializer
    permission_classes = [RolePermission]
    operations = {
        "list": "list_bookings",
        "retrieve": "list_bookings",
        "create": "place_booking",
        "lookup": "lookup_booking",
        "check_in": "check_in",
        "check_out": "check_out",
        "cancel": "cancel_booking",
    }

    def get_queryset(self):
        qs = Booking.objects.select_related("room", "guest").order_by("-created_at")
        booking_status = self.request.query_params.get("status")
        room_id = self.request.query_params.get("room")
        if booking_status:
            qs = qs.filter(status=booking_status)
        if room_id:
            qs = qs.filter(room_id=room_id)
        if self.request.query_params.get("active") in ("1", "true"):
            qs = qs.filter(status__in=Booking.ACTIVE_STATUSES)
        return qs

    def create(self, request, *args, **kwargs):
        """Place a booking: guest, booking and payment notification"""
        serializer = PlaceBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        placed = services.place_booking(
            room_id=data["room_id"],
            nights=data["nights"],
            guest_details=data["guest"],
            context=SessionContext.from_request(request),
            check_in=data.get("check_in"),
            transaction_reference=data.get("transaction_reference"),
        )
        booking = placed.booking
        return Response({
            "booking_id": placed.booking_id,
            "access_code": placed.access_code,
            "booking": BookingSerializer(booking).data,
            "payment_notification_id": placed.payment_notification.pk,
            "payment_instructions": payment_instructions(placed.payment_settings, booking.total_amount),
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def lookup(self, request):
        """Find the active booking holding an access code"""
        code = access_codes.normalize(request.query_params.get("access_code"))
        if not access_codes.is_well_formed(code):
            raise ParseError("A valid access_code parameter is required.")

        booking = (
            Booking.objects.select_related("room")
            .filter(access_code=code, status__in=Booking.ACTIVE_STATUSES)
            .first()
        )
        if booking is None:
            raise NotFound("Booking not found.")
        return Response(BookingSummarySerializer(booking).data)

    def _advance(self, request, pk, operation):
        booking = services.advance_booking(pk, operation, SessionContext.from_request(request))
        return Response(self.get_serializer(booking).data)

    @action(detail=True, methods=["post"])
    def check_in(self, request, pk=None):
        return self._advance(request, pk, "check_in")

    @action(detail=True, methods=["post"])
    def check_out(self, request, pk=None):
        return self._advance(request, pk, "check_out")

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        return self._advance(request, pk, "cancel_booking")


class PaymentNotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = PaymentNotification.objects.all()
    serializer_class = PaymentNotificationSerializer
    permission_classes = [RolePermission]
    operations = {
        "list": "list_payment_notifications",
        "retrieve": "list_payment_notifications",
        "confirm": "confirm_payment",
    }

    def get_queryset(self):
        qs = PaymentNotification.objects.order_by("-created_at")
        is_confirmed = self.request.query_params.get("is_confirmed")
        if is_confirmed is not None:
            qs = qs.filter(is_confirmed=is_confirmed.lower() in ("1", "true"))
        return qs

    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        """Staff confirms an out-of-band payment was received"""
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        notification, booking = services.confirm_payment(
            pk, serializer.validated_data["booking_id"], SessionContext.from_request(request)
        )
        return Response({
            "notification": PaymentNotificationSerializer(notification).data,
            "booking_id": booking.pk,
            "status": booking.status,
            "payment_status": booking.payment_status,
        })


class PaymentSettingsView(APIView):
    permission_classes = [RolePermission]
    operations = {
        "get": "view_payment_instructions",
        "put": "manage_payment_settings",
    }

    def get(self, request):
        current = GuestHouseSettings.current()
        if current is None:
            raise NotFound("Payment settings not configured.")
        return Response(PaymentSettingsSerializer(current).data)

    def put(self, request):
        serializer = PaymentSettingsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        current = services.update_payment_settings(serializer.validated_data, SessionContext.from_request(request))
        return Response(PaymentSettingsSerializer(current).data)


class StaffViewSet(viewsets.ViewSet):
    permission_classes = [RolePermission]
    operations = {
        "list": "manage_staff",
        "create": "manage_staff",
        "destroy": "manage_staff",
        "onboard": "manage_staff",
    }

    def list(self, request):
        staff = (
            UserRole.objects.select_related("user")
            .filter(role__in=[UserRole.Role.RECEPTIONIST, UserRole.Role.OWNER])
            .order_by("role", "user__username")
        )
        return Response(StaffSerializer(staff, many=True).data)

    def create(self, request):
        """Grant a staff role to an existing account"""
        serializer = GrantRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_role = services.grant_role(
            serializer.validated_data["user"],
            serializer.validated_data["role"],
            SessionContext.from_request(request),
        )
        return Response(StaffSerializer(user_role).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def onboard(self, request):
        """Create a login for a new receptionist or owner"""
        serializer = StaffAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_role = services.create_staff_account(serializer.validated_data, SessionContext.from_request(request))
        return Response(StaffSerializer(user_role).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        """Revoke staff access; the account stays as a guest"""
        user = get_object_or_404(get_user_model(), pk=pk)
        user_role = services.revoke_role(user, SessionContext.from_request(request))
        return Response(StaffSerializer(user_role).data)


class RegisterView(APIView):
    permission_classes = [RolePermission]
    operations = {"post": "register_account"}

    def post(self, request):
        """Guest sign up"""
        serializer = RegisterAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.register_account(serializer.validated_data, SessionContext.from_request(request))
        return Response(AccountSerializer(user).data, status=status.HTTP_201_CREATED)


class RevenueView(APIView):
    permission_classes = [RolePermission]
    operations = {"get": "view_revenue"}

    def get(self, request):
        summary = services.revenue_summary(SessionContext.from_request(request))
        return Response(RevenueSummarySerializer(summary).data)


class SessionView(APIView):
    permission_classes = [RolePermission]
    operations = {"get": "view_session", "post": "view_session"}

    def get(self, request):
        return Response(SessionContext.from_request(request).as_dict())

    def post(self, request):
        """Sign out: clears the session, and with it the resolved role"""
        logout(request)
        return Response(SessionContext().as_dict())
