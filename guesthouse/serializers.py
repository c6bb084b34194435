from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from rest_framework import serializers

from .models import Booking, Guest, GuestHouseSettings, PaymentNotification, Room, UserRole


def format_currency(amount):
    return f"{settings.GUESTHOUSE_CURRENCY} {amount:,.2f}"


class GuestDetailsSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=50)
    id_number = serializers.CharField(max_length=100, allow_blank=True, required=False, default="")
    nationality = serializers.CharField(max_length=100, allow_blank=True, required=False, default="")


class PlaceBookingSerializer(serializers.Serializer):
    room_id = serializers.IntegerField()
    nights = serializers.IntegerField(min_value=1)
    guest = GuestDetailsSerializer()
    check_in = serializers.DateTimeField(required=False)
    transaction_reference = serializers.CharField(max_length=100, allow_blank=True, required=False)

    def validate_nights(self, value):
        if value > settings.GUESTHOUSE_MAX_NIGHTS:
            raise serializers.ValidationError(
                f"A stay can be at most {settings.GUESTHOUSE_MAX_NIGHTS} nights."
            )
        return value


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = "__all__"
        read_only_fields = ("created_at", "updated_at")

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data["price_display"] = format_currency(instance.price_per_night)
        return data


class RoomStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Room.Status.choices)


class GuestSerializer(serializers.ModelSerializer):

    class Meta:
        model = Guest
        fields = "__all__"


class BookingSerializer(serializers.ModelSerializer):
    room = RoomSerializer(read_only=True)
    guest = GuestSerializer(read_only=True)

    class Meta:
        model = Booking
        fields = "__all__"

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data["total_display"] = format_currency(instance.total_amount)
        return data


class BookingSummarySerializer(serializers.ModelSerializer):
    """What a guest holding the access code is allowed to see."""

    room_name = serializers.CharField(source="room.name", read_only=True)

    class Meta:
        model = Booking
        fields = ("id", "room_id", "room_name", "check_in", "check_out", "nights", "status", "payment_status")


class PaymentNotificationSerializer(serializers.ModelSerializer):

    class Meta:
        model = PaymentNotification
        fields = "__all__"


class ConfirmPaymentSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()


class PaymentSettingsSerializer(serializers.ModelSerializer):

    class Meta:
        model = GuestHouseSettings
        fields = ("payment_account_number", "payment_account_name", "payment_provider", "updated_at")
        read_only_fields = ("updated_at",)


class StaffSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source="user.pk", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    name = serializers.SerializerMethodField()

    class Meta:
        model = UserRole
        fields = ("user_id", "username", "email", "name", "role")

    def get_name(self, obj):
        return obj.user.get_full_name() or obj.user.get_username()


STAFF_ROLE_CHOICES = [choice for choice in UserRole.Role.choices if choice[0] != UserRole.Role.GUEST]


class GrantRoleSerializer(serializers.Serializer):
    user_id = serializers.PrimaryKeyRelatedField(queryset=get_user_model().objects.all(), source="user")
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES)


class RegisterAccountSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)

    def validate_email(self, value):
        value = value.lower()
        User = get_user_model()
        if User.objects.filter(Q(username__iexact=value) | Q(email__iexact=value)).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    def validate(self, attrs):
        candidate = get_user_model()(
            username=attrs["email"],
            email=attrs["email"],
            first_name=attrs["first_name"],
            last_name=attrs["last_name"],
        )
        try:
            validate_password(attrs["password"], user=candidate)
        except DjangoValidationError as exc:
            raise serializers.ValidationError({"password": list(exc.messages)})
        return attrs


class StaffAccountSerializer(RegisterAccountSerializer):
    role = serializers.ChoiceField(choices=STAFF_ROLE_CHOICES)


class AccountSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(source="pk", read_only=True)
    email = serializers.EmailField(read_only=True)
    name = serializers.CharField(source="get_full_name", read_only=True)
    role = serializers.CharField(source="app_role.role", read_only=True)


class PaymentInstructionsSerializer(serializers.Serializer):
    provider = serializers.CharField()
    account_number = serializers.CharField()
    account_name = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    amount_display = serializers.SerializerMethodField()

    def get_amount_display(self, obj):
        return format_currency(obj["amount"])


class RoomRevenueSerializer(serializers.Serializer):
    room_id = serializers.IntegerField()
    room_name = serializers.CharField()
    revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    bookings = serializers.IntegerField()


class RevenueSummarySerializer(serializers.Serializer):
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_bookings = serializers.IntegerField()
    occupancy_rate = serializers.FloatField()
    room_breakdown = RoomRevenueSerializer(many=True)
