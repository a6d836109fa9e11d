from rest_framework.routers import DefaultRouter
from .api import ServiceViewSet

app_name = "services_api"

router = DefaultRouter()
router.register(r"services", ServiceViewSet, basename="service")

urlpatterns = router.urls
