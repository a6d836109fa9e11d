from rest_framework.routers import DefaultRouter
from .api import OrganizationViewSet, ProviderViewSet

app_name = "providers_api"

router = DefaultRouter()
router.register(r"providers", ProviderViewSet, basename="provider")
router.register(r"organizations", OrganizationViewSet, basename="organization")

urlpatterns = router.urls
