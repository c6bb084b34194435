from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator


class Room(models.Model):
    class RoomType(models.TextChoices):
        SINGLE = "single"
        DOUBLE = "double"
        SUITE = "suite"
        DELUXE = "deluxe"

    class Status(models.TextChoices):
        AVAILABLE = "available"
        OCCUPIED = "occupied"
        RESERVED = "reserved"
        CLEANING = "cleaning"

    name = models.CharField(max_length=100, unique=True)
    room_type = models.CharField(max_length=10, choices=RoomType.choices, default=RoomType.SINGLE)
    price_per_night = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    capacity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    floor = models.IntegerField(default=1)
    description = models.TextField(blank=True)
    amenities = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Guest(models.Model):
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50)
    id_number = models.CharField(max_length=100, blank=True)
    nationality = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.full_name


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        CHECKED_IN = "checked_in"
        CHECKED_OUT = "checked_out"
        CANCELLED = "cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        REFUNDED = "refunded"

    # Statuses that still hold the room and the access code
    ACTIVE_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.CHECKED_IN)

    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name="bookings")
    guest = models.ForeignKey(Guest, on_delete=models.SET_NULL, null=True, blank=True, related_name="bookings")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="bookings"
    )
    check_in = models.DateTimeField()
    check_out = models.DateTimeField()
    nights = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    # Snapshot of nights * room price at creation time
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    access_code = models.CharField(max_length=6, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Booking {self.pk} ({self.room_id}, {self.status})"


class PaymentNotification(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="payment_notifications")
    guest_name = models.CharField(max_length=200)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    phone_number = models.CharField(max_length=50)
    transaction_reference = models.CharField(max_length=100, blank=True, null=True)
    is_confirmed = models.BooleanField(default=False)
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="confirmed_payments",
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class UserRole(models.Model):
    class Role(models.TextChoices):
        GUEST = "guest"
        RECEPTIONIST = "receptionist"
        OWNER = "owner"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="app_role")
    role = models.CharField(max_length=12, choices=Role.choices, default=Role.GUEST)

    def __str__(self):
        return f"{self.user_id}: {self.role}"


class GuestHouseSettings(models.Model):
    """Single-row table holding the payment account guests pay into."""

    payment_account_number = models.CharField(max_length=50)
    payment_account_name = models.CharField(max_length=150, blank=True)
    payment_provider = models.CharField(max_length=50, default="MTN Mobile Money")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def current(cls):
        return cls.objects.order_by("pk").first()
