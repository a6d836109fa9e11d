from django.urls import include, path
from rest_framework.routers import DefaultRouter
from .api import BookingViewSet, SlotViewSet

app_name = "bookings_api"

router = DefaultRouter()
router.register(r"slots", SlotViewSet, basename="slot")
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [path("", include(router.urls))]
