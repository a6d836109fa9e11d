# apps/providers/api.py
from rest_framework import viewsets
from rest_framework.permissions import AllowAny, IsAuthenticated

from drf_spectacular.utils import extend_schema, extend_schema_view

from .models import Organization, Provider
from .serializers import OrganizationSerializer, ProviderSerializer


@extend_schema_view(
    list=extend_schema(summary="List providers", description="Active providers; search with `q`."),
    retrieve=extend_schema(summary="Get a provider"),
)
class ProviderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ProviderSerializer
    permission_classes = [AllowAny]
    search_fields = ["name", "bio", "email"]
    ordering_fields = ["name", "created_at"]

    def get_queryset(self):
        return Provider.objects.filter(is_active=True).order_by("name")


@extend_schema_view(
    list=extend_schema(summary="My organizations", description="Organizations the caller is a member of."),
    retrieve=extend_schema(summary="Get one of my organizations"),
)
class OrganizationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = OrganizationSerializer
    permission_classes = [IsAuthenticated]
    search_fields = ["name"]

    def get_queryset(self):
        return (
            Organization.objects.filter(memberships__user=self.request.user)
            .prefetch_related("locations")
            .distinct()
            .order_by("name")
        )
