from django.urls import include, path
from rest_framework.routers import DefaultRouter
from .api import AvailabilityViewSet

app_name = "availability_api"

router = DefaultRouter()
router.register(r"availability", AvailabilityViewSet, basename="availability")

urlpatterns = [path("", include(router.urls))]
