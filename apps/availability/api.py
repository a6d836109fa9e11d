# apps/availability/api.py
from __future__ import annotations

from datetime import datetime, time

from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view

from apps.audit.utils import log_event
from apps.providers.access import is_platform_admin
from apps.providers.models import Organization, OrganizationMembership, Provider
from apps.rbac.permissions import roles_required

from .exceptions import AvailabilityError, AvailabilityPermissionError
from .models import Availability, AvailabilityStatus
from .schemas import (
    AvailabilityStatsSerializer,
    CreateAvailabilityExample,
    DomainError400Serializer,
    SlotGenerationResultSerializer,
    UpdateAvailabilityExample,
)
from .serializers import (
    AcceptSeriesSerializer,
    AvailabilityCreateSerializer,
    AvailabilitySerializer,
    AvailabilityUpdateSerializer,
    RejectSerializer,
)
from .services import (
    Scope,
    accept_availability,
    accept_series as accept_series_for,
    cancel_availability,
    create_availability,
    reject_availability,
    update_availability,
    workflow_statistics,
)
from .slots import regenerate_slots as rebuild_slots, slot_statistics


class DomainErrorMixin:
    """
    I turn service-layer errors into `{"detail", "code"}` responses with the
    status code each error class carries.
    """
    domain_error_classes: tuple = (AvailabilityError,)

    def handle_exception(self, exc):
        if isinstance(exc, self.domain_error_classes):
            body = {"detail": exc.message, "code": exc.code}
            if getattr(exc, "errors", None):
                body["errors"] = exc.errors
            return Response(body, status=exc.status_code)
        return super().handle_exception(exc)


def parse_range_param(request, name: str, end_of_day: bool = False):
    """ISO datetime or date query param → aware datetime (None when absent)."""
    raw = request.query_params.get(name)
    if not raw:
        return None
    dt = parse_datetime(raw)
    if dt is None:
        d = parse_date(raw)
        if d is None:
            raise AvailabilityError(f"{name} is not a valid ISO 8601 date or datetime", "invalid_param")
        dt = datetime.combine(d, time.max if end_of_day else time.min)
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


@extend_schema_view(
    list=extend_schema(
        summary="List availability (paginated)",
        description=(
            "Windows on calendars the caller can see. Filters: `provider_id`, `organization_id`, "
            "`status`, `series_id`, `service_id`, `date_from`, `date_to`."
        ),
        parameters=[
            OpenApiParameter(name="provider_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="organization_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="status", required=False, type=OpenApiTypes.STR),
            OpenApiParameter(name="series_id", required=False, type=OpenApiTypes.UUID),
            OpenApiParameter(name="service_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="date_from", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="date_to", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="sort", required=False, type=OpenApiTypes.STR),
            OpenApiParameter(name="limit", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="offset", required=False, type=OpenApiTypes.INT),
        ],
    ),
    retrieve=extend_schema(summary="Get availability", responses={200: AvailabilitySerializer}),
    create=extend_schema(
        summary="Create availability (optionally recurring)",
        description=(
            "Provider-created windows are ACCEPTED and get slots immediately. Windows created by an "
            "organization member are PENDING proposals. Overlaps return **409**."
        ),
        request=AvailabilityCreateSerializer,
        examples=[CreateAvailabilityExample],
        responses={201: AvailabilitySerializer(many=True), 400: DomainError400Serializer, 409: DomainError400Serializer},
    ),
    partial_update=extend_schema(
        summary="Update availability",
        description=(
            "`scope` is `single`, `future` or `all` for series members. Booked slots are kept; a change "
            "that would exclude a booking returns **409**."
        ),
        request=AvailabilityUpdateSerializer,
        examples=[UpdateAvailabilityExample],
        responses={200: AvailabilitySerializer(many=True), 409: DomainError400Serializer},
    ),
    destroy=extend_schema(
        summary="Cancel availability",
        description="Soft cancel. Refused with **409** while bookings exist.",
        parameters=[
            OpenApiParameter(name="scope", required=False, type=OpenApiTypes.STR, enum=list(Scope.values)),
            OpenApiParameter(name="reason", required=False, type=OpenApiTypes.STR),
        ],
        responses={204: None, 409: DomainError400Serializer},
    ),
)
class AvailabilityViewSet(
    DomainErrorMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    I manage provider availability and the proposal workflow. Writes go
    through the service layer; every write is audited.
    """
    schema_tags = ["Availability"]
    serializer_class = AvailabilitySerializer
    permission_classes = [IsAuthenticated, roles_required("provider", "organization")]
    filter_backends = [OrderingFilter]
    ordering_fields = ["start", "end", "status", "created_at"]
    ordering = ["start", "id"]

    def get_queryset(self):
        qs = Availability.objects.select_related("provider", "organization").prefetch_related(
            "service_configs__service"
        )
        user = self.request.user
        if is_platform_admin(user):
            return qs
        org_ids = OrganizationMembership.objects.filter(user=user).values_list("organization_id", flat=True)
        return qs.filter(Q(provider__user=user) | Q(organization_id__in=org_ids))

    def filter_queryset(self, queryset):
        qs = super().filter_queryset(queryset)
        if self.action != "list":
            return qs
        params = self.request.query_params
        for param, field in (
            ("provider_id", "provider_id"),
            ("organization_id", "organization_id"),
            ("status", "status"),
            ("series_id", "series_id"),
            ("service_id", "service_configs__service_id"),
        ):
            value = params.get(param)
            if value:
                qs = qs.filter(**{field: value})
        df = parse_range_param(self.request, "date_from")
        dt = parse_range_param(self.request, "date_to", end_of_day=True)
        if df:
            qs = qs.filter(end__gt=df)
        if dt:
            qs = qs.filter(start__lt=dt)
        return qs.distinct()

    # ---- create ----
    def create(self, request, *args, **kwargs):
        ser = AvailabilityCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        created = create_availability(request.user, ser.validated_data)
        for av in created:
            log_event(request, "availability.create", "Availability", av.id)
        return Response(AvailabilitySerializer(created, many=True).data, status=status.HTTP_201_CREATED)

    # ---- update ----
    def partial_update(self, request, *args, **kwargs):
        obj = self.get_object()
        ser = AvailabilityUpdateSerializer(data=request.data, context={"availability": obj})
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        scope = data.pop("scope", Scope.SINGLE)

        updated = update_availability(request.user, obj, data, scope=scope)
        for av in updated:
            log_event(request, "availability.update", "Availability", av.id)
        return Response(AvailabilitySerializer(updated, many=True).data)

    # ---- cancel ----
    def destroy(self, request, *args, **kwargs):
        obj = self.get_object()
        scope = request.query_params.get("scope", Scope.SINGLE)
        reason = request.query_params.get("reason", "")
        cancelled = cancel_availability(request.user, obj, scope=scope, reason=reason)
        for av in cancelled:
            log_event(request, "availability.cancel", "Availability", av.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ---- proposal workflow ----
    @extend_schema(
        methods=["POST"],
        summary="Accept a proposal",
        description="Provider only; PENDING only. Generates slots and notifies the proposer.",
        request=None,
        responses={200: SlotGenerationResultSerializer, 403: DomainError400Serializer, 409: DomainError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="accept")
    def accept(self, request, pk=None):
        obj = self.get_object()
        result = accept_availability(request.user, obj)
        log_event(request, "availability.accept", "Availability", obj.id)
        return Response(result)

    @extend_schema(
        methods=["POST"],
        summary="Reject a proposal",
        request=RejectSerializer,
        responses={200: AvailabilitySerializer, 403: DomainError400Serializer, 409: DomainError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        obj = self.get_object()
        ser = RejectSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        obj = reject_availability(request.user, obj, ser.validated_data.get("reason", ""))
        log_event(request, "availability.reject", "Availability", obj.id)
        return Response(AvailabilitySerializer(obj).data)

    @extend_schema(
        methods=["POST"],
        summary="Accept every pending occurrence of a series",
        description="`mode=all` accepts all pending rows; `future_only` skips rows that already started.",
        request=AcceptSeriesSerializer,
        responses={200: OpenApiTypes.OBJECT, 409: DomainError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="accept-series")
    def accept_series(self, request, pk=None):
        obj = self.get_object()
        ser = AcceptSeriesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = accept_series_for(request.user, obj, ser.validated_data["mode"])
        log_event(request, "availability.accept_series", "Availability", obj.series_id or obj.id)
        return Response(result)

    @extend_schema(
        methods=["POST"],
        summary="Regenerate slots",
        description="Rebuilds unbooked slots; booked slots are preserved.",
        request=None,
        responses={200: SlotGenerationResultSerializer},
    )
    @action(detail=True, methods=["post"], url_path="regenerate-slots")
    def regenerate_slots(self, request, pk=None):
        obj = self.get_object()
        if obj.provider.user_id != request.user.id and not is_platform_admin(request.user):
            raise AvailabilityPermissionError()
        if obj.status != AvailabilityStatus.ACCEPTED:
            raise AvailabilityError("Only accepted availability has slots", "not_accepted")
        result = rebuild_slots(obj)
        log_event(request, "availability.regenerate_slots", "Availability", obj.id)
        return Response(result)

    # ---- statistics ----
    @extend_schema(
        methods=["GET"],
        summary="Workflow and slot statistics",
        description="Pass `provider_id` or `organization_id`; slot stats need a provider.",
        parameters=[
            OpenApiParameter(name="provider_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="organization_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="date_from", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="date_to", required=False, type=OpenApiTypes.DATETIME),
        ],
        responses={200: AvailabilityStatsSerializer},
    )
    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        user = request.user
        provider = organization = None
        pid = request.query_params.get("provider_id")
        oid = request.query_params.get("organization_id")

        if pid:
            provider = Provider.objects.filter(id=pid).first()
            if provider is None:
                return Response({"detail": "Provider not found.", "code": "not_found"}, status=404)
            if provider.user_id != user.id and not is_platform_admin(user):
                raise AvailabilityPermissionError()
        elif oid:
            organization = Organization.objects.filter(id=oid).first()
            if organization is None:
                return Response({"detail": "Organization not found.", "code": "not_found"}, status=404)
            member = OrganizationMembership.objects.filter(user=user, organization=organization).exists()
            if not member and not is_platform_admin(user):
                raise AvailabilityPermissionError()
        else:
            provider = getattr(user, "provider_profile", None)
            if provider is None:
                return Response(
                    {"detail": "provider_id or organization_id is required.", "code": "invalid_param"},
                    status=400,
                )

        payload = {"workflow": workflow_statistics(provider=provider, organization=organization)}
        if provider is not None:
            payload["slots"] = slot_statistics(
                provider,
                parse_range_param(request, "date_from"),
                parse_range_param(request, "date_to", end_of_day=True),
            )
        return Response(payload)
