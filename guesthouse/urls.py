from django.urls import path
from rest_framework.routers import DefaultRouter
from guesthouse.views import (
    BookingViewSet,
    PaymentNotificationViewSet,
    PaymentSettingsView,
    RegisterView,
    RevenueView,
    RoomViewSet,
    SessionView,
    StaffViewSet,
)

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'bookings', BookingViewSet)
router.register(r'payment-notifications', PaymentNotificationViewSet)
router.register(r'staff', StaffViewSet, basename='staff')

urlpatterns = [
    path('register/', RegisterView.as_view(), name='register'),
    path('payment-settings/', PaymentSettingsView.as_view(), name='payment-settings'),
    path('revenue/', RevenueView.as_view(), name='revenue'),
    path('session/', SessionView.as_view(), name='session'),
] + router.urls
