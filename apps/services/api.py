# apps/services/api.py
from rest_framework import viewsets
from rest_framework.permissions import AllowAny

from drf_spectacular.utils import extend_schema, extend_schema_view

from .models import Service
from .serializers import ServiceSerializer


@extend_schema_view(
    list=extend_schema(summary="List active services", description="Ordered by display priority, then name."),
    retrieve=extend_schema(summary="Get a service"),
)
class ServiceViewSet(viewsets.ReadOnlyModelViewSet):
    """I expose the public service catalog; writes go through the admin."""
    serializer_class = ServiceSerializer
    permission_classes = [AllowAny]
    search_fields = ["name", "description"]
    ordering_fields = ["display_priority", "name", "default_duration", "default_price"]

    def get_queryset(self):
        return Service.objects.for_listing()
