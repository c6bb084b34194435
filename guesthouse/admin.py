from django.contrib import admin

from .models import Booking, Guest, GuestHouseSettings, PaymentNotification, Room, UserRole


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("name", "room_type", "price_per_night", "capacity", "floor", "status")
    list_filter = ("status", "room_type")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "room", "guest", "check_in", "nights", "total_amount", "status", "payment_status")
    list_filter = ("status", "payment_status")
    search_fields = ("access_code", "guest__last_name", "guest__phone")


@admin.register(PaymentNotification)
class PaymentNotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "guest_name", "amount", "phone_number", "is_confirmed", "confirmed_at")
    list_filter = ("is_confirmed",)


admin.site.register(Guest)
admin.site.register(UserRole)
admin.site.register(GuestHouseSettings)
