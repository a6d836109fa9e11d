# apps/bookings/api.py
from __future__ import annotations

from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view

from apps.audit.utils import log_event
from apps.availability.api import DomainErrorMixin, parse_range_param
from apps.availability.exceptions import AvailabilityError
from apps.availability.models import CalculatedSlot
from apps.availability.serializers import CalculatedSlotSerializer
from apps.providers.access import can_manage_provider_calendar, is_platform_admin
from apps.providers.models import OrganizationMembership, Provider
from apps.services.models import Service

from .exceptions import BookingError, BookingPermissionError
from .ics import calendar_text_for_bookings
from .models import Booking
from .schemas import (
    BookingError400Serializer,
    ClientBookingExample,
    DeclineBookingExample,
    GuestBookingExample,
    SlotUnavailableExample,
)
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    NotificationLogSerializer,
    ReasonSerializer,
)
from .services import (
    can_view_booking,
    cancel_booking,
    complete_booking,
    confirm_booking,
    create_booking,
    decline_booking,
    delete_booking,
    mark_no_show,
    search_available_slots,
    update_booking,
)

MAX_SLOT_RESULTS = 200


def _truthy(value) -> bool:
    return str(value).lower() in {"1", "true", "yes", "on"}


@extend_schema_view(
    list=extend_schema(
        summary="Search bookable slots",
        description=(
            "Future AVAILABLE slots on accepted availability, earliest first. Filters: `provider_id`, "
            "`service_id`, `date_from`, `date_to`, `online_only`. `limit` caps the result (default 50)."
        ),
        parameters=[
            OpenApiParameter(name="provider_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="service_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="date_from", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="date_to", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="online_only", required=False, type=OpenApiTypes.BOOL),
            OpenApiParameter(name="limit", required=False, type=OpenApiTypes.INT),
        ],
        responses={200: CalculatedSlotSerializer(many=True)},
    ),
    retrieve=extend_schema(summary="Get slot", responses={200: CalculatedSlotSerializer}),
)
class SlotViewSet(DomainErrorMixin, viewsets.ReadOnlyModelViewSet):
    """Public slot search. Anyone may look; booking goes through /bookings/."""
    schema_tags = ["Slots"]
    serializer_class = CalculatedSlotSerializer
    permission_classes = [AllowAny]
    pagination_class = None
    filter_backends = []
    domain_error_classes = (BookingError, AvailabilityError)

    def get_queryset(self):
        return CalculatedSlot.objects.select_related("availability__provider", "service", "service_config")

    def list(self, request, *args, **kwargs):
        params = request.query_params
        provider = service = None
        if params.get("provider_id"):
            provider = get_object_or_404(Provider, id=params["provider_id"])
        if params.get("service_id"):
            service = get_object_or_404(Service, id=params["service_id"])
        try:
            limit = min(int(params.get("limit", 50)), MAX_SLOT_RESULTS)
        except ValueError:
            raise BookingError("limit must be an integer", code="invalid_param") from None

        slots = search_available_slots(
            provider=provider,
            service=service,
            date_from=parse_range_param(request, "date_from"),
            date_to=parse_range_param(request, "date_to", end_of_day=True),
            online_only=_truthy(params.get("online_only", "")),
            limit=max(limit, 1),
        )
        return Response(CalculatedSlotSerializer(slots, many=True).data)


@extend_schema_view(
    list=extend_schema(
        summary="List bookings (paginated)",
        description=(
            "Bookings the caller may see: their own as a client, their calendar as a provider, "
            "and calendars of organizations they manage. Filters: `status`, `provider_id`, "
            "`date_from`, `date_to`, `q` (guest name/email)."
        ),
        parameters=[
            OpenApiParameter(name="status", required=False, type=OpenApiTypes.STR),
            OpenApiParameter(name="provider_id", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="date_from", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="date_to", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="q", required=False, type=OpenApiTypes.STR),
            OpenApiParameter(name="sort", required=False, type=OpenApiTypes.STR),
            OpenApiParameter(name="limit", required=False, type=OpenApiTypes.INT),
            OpenApiParameter(name="offset", required=False, type=OpenApiTypes.INT),
        ],
    ),
    retrieve=extend_schema(summary="Get booking", responses={200: BookingSerializer}),
    create=extend_schema(
        summary="Book a slot",
        description=(
            "Open to guests and signed-in clients. The slot is locked while it is taken; a slot that "
            "is no longer AVAILABLE returns **409**. Bookings on windows that require confirmation "
            "start PENDING, others are CONFIRMED right away."
        ),
        request=BookingCreateSerializer,
        examples=[GuestBookingExample, ClientBookingExample, SlotUnavailableExample],
        responses={201: BookingSerializer, 400: BookingError400Serializer, 409: BookingError400Serializer},
    ),
    partial_update=extend_schema(
        summary="Edit booking details",
        request=BookingUpdateSerializer,
        responses={200: BookingSerializer, 403: BookingError400Serializer, 409: BookingError400Serializer},
    ),
    destroy=extend_schema(
        summary="Delete booking",
        description="Provider/admin only. Frees the slot; notification history keeps the booking context.",
        responses={204: None, 403: BookingError400Serializer},
    ),
)
class BookingViewSet(
    DomainErrorMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    I expose the booking lifecycle: create (guest or client), confirm/decline
    by the provider, cancel by either side, and complete/no-show after the
    fact. Every write is audited.
    """
    schema_tags = ["Bookings"]
    serializer_class = BookingSerializer
    domain_error_classes = (BookingError, AvailabilityError)
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["guest_name", "guest_email", "provider__name", "service__name"]
    ordering_fields = ["start", "status", "created_at"]
    ordering = ["start", "id"]

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get_queryset(self):
        qs = Booking.objects.select_related(
            "provider", "service", "client", "location", "slot__availability"
        )
        user = self.request.user
        if is_platform_admin(user):
            return qs
        managed = OrganizationMembership.objects.filter(
            user=user, role__in=OrganizationMembership.CALENDAR_MANAGERS
        ).values_list("organization_id", flat=True)
        return qs.filter(
            Q(client=user)
            | Q(provider__user=user)
            | Q(slot__availability__organization_id__in=managed)
        )

    def filter_queryset(self, queryset):
        qs = super().filter_queryset(queryset)
        if self.action != "list":
            return qs
        params = self.request.query_params
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("provider_id"):
            qs = qs.filter(provider_id=params["provider_id"])
        df = parse_range_param(self.request, "date_from")
        dt = parse_range_param(self.request, "date_to", end_of_day=True)
        if df:
            qs = qs.filter(end__gt=df)
        if dt:
            qs = qs.filter(start__lt=dt)
        return qs

    def get_object(self):
        obj = super().get_object()
        if not can_view_booking(self.request.user, obj):
            raise BookingPermissionError()
        return obj

    # ---- create ----
    def create(self, request, *args, **kwargs):
        ser = BookingCreateSerializer(data=request.data, context={"request": request})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        booking = create_booking(
            slot_id=data["slot"].id,
            client=request.user,
            guest=ser.guest_payload(),
            appointment_type=data["appointment_type"],
            notes=data.get("notes", ""),
        )
        log_event(request, "booking.create", "Booking", booking.id)
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    # ---- edit ----
    def partial_update(self, request, *args, **kwargs):
        booking = self.get_object()
        ser = BookingUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        booking = update_booking(request.user, booking, ser.validated_data)
        log_event(request, "booking.update", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    def destroy(self, request, *args, **kwargs):
        booking = self.get_object()
        booking_id = booking.id
        delete_booking(request.user, booking)
        log_event(request, "booking.delete", "Booking", booking_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ---- lifecycle ----
    @extend_schema(
        methods=["POST"],
        summary="Confirm a pending booking",
        request=None,
        responses={200: BookingSerializer, 403: BookingError400Serializer, 409: BookingError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="confirm")
    def confirm(self, request, pk=None):
        booking = confirm_booking(request.user, self.get_object())
        log_event(request, "booking.confirm", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        methods=["POST"],
        summary="Decline a pending booking",
        description="Cancels the booking and reopens the slot.",
        request=ReasonSerializer,
        examples=[DeclineBookingExample],
        responses={200: BookingSerializer, 403: BookingError400Serializer, 409: BookingError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="decline")
    def decline(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        booking = decline_booking(request.user, self.get_object(), ser.validated_data["reason"])
        log_event(request, "booking.decline", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        methods=["POST"],
        summary="Cancel a booking",
        description="Client or provider side. Reopens the slot.",
        request=ReasonSerializer,
        responses={200: BookingSerializer, 403: BookingError400Serializer, 409: BookingError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        booking = cancel_booking(request.user, self.get_object(), ser.validated_data["reason"])
        log_event(request, "booking.cancel", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        methods=["POST"],
        summary="Mark a confirmed booking as completed",
        request=None,
        responses={200: BookingSerializer, 409: BookingError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        booking = complete_booking(request.user, self.get_object())
        log_event(request, "booking.complete", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        methods=["POST"],
        summary="Mark a confirmed booking as a no-show",
        request=None,
        responses={200: BookingSerializer, 409: BookingError400Serializer},
    )
    @action(detail=True, methods=["post"], url_path="no-show")
    def no_show(self, request, pk=None):
        booking = mark_no_show(request.user, self.get_object())
        log_event(request, "booking.no_show", "Booking", booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        methods=["GET"],
        summary="Notification history",
        responses={200: NotificationLogSerializer(many=True)},
    )
    @action(detail=True, methods=["get"], url_path="notifications")
    def notifications(self, request, pk=None):
        booking = self.get_object()
        return Response(NotificationLogSerializer(booking.notifications.all(), many=True).data)

    # ---- calendar export ----
    @extend_schema(
        methods=["GET"],
        summary="Download .ics for this booking",
        description="I return a .ics file for the booking (UTC).",
        responses={(200, "text/calendar"): OpenApiTypes.BINARY},
    )
    @action(detail=True, methods=["get"], url_path="ics")
    def ics(self, request, pk=None):
        booking = self.get_object()
        resp = HttpResponse(calendar_text_for_bookings([booking]), content_type="text/calendar; charset=utf-8")
        resp["Content-Disposition"] = f'attachment; filename="booking-{booking.id}.ics"'
        log_event(request, "booking.ics", "Booking", booking.id)
        return resp

    @extend_schema(
        methods=["GET"],
        summary="Provider calendar feed (.ics)",
        description=(
            "I return a multi-event .ics for a provider. Filters: `date_from`, `date_to` (ISO 8601) "
            "and optional `status`."
        ),
        parameters=[
            OpenApiParameter(name="date_from", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="date_to", required=False, type=OpenApiTypes.DATETIME),
            OpenApiParameter(name="status", required=False, type=OpenApiTypes.STR),
        ],
        responses={(200, "text/calendar"): OpenApiTypes.BINARY},
    )
    @action(detail=False, methods=["get"], url_path=r"provider/(?P<provider_id>[^/.]+)/ics")
    def provider_ics(self, request, provider_id=None):
        provider = get_object_or_404(Provider, id=provider_id)
        managed_orgs = OrganizationMembership.objects.filter(
            user=request.user, role__in=OrganizationMembership.CALENDAR_MANAGERS
        ).values_list("organization_id", flat=True)
        allowed = can_manage_provider_calendar(request.user, provider) or provider.bookings.filter(
            slot__availability__organization_id__in=managed_orgs
        ).exists()
        if not allowed:
            raise BookingPermissionError()

        qs = Booking.objects.select_related("provider", "service", "client", "location").filter(provider=provider)
        df = parse_range_param(request, "date_from")
        dt = parse_range_param(request, "date_to", end_of_day=True)
        if df:
            qs = qs.filter(end__gt=df)
        if dt:
            qs = qs.filter(start__lt=dt)
        if request.query_params.get("status"):
            qs = qs.filter(status=request.query_params["status"])

        resp = HttpResponse(calendar_text_for_bookings(qs.order_by("start")), content_type="text/calendar; charset=utf-8")
        resp["Content-Disposition"] = f'attachment; filename="provider-{provider.id}.ics"'
        log_event(request, "booking.ics_feed", "Provider", provider.id)
        return resp
