# apps/availability/serializers.py
from __future__ import annotations

from rest_framework import serializers

from apps.providers.models import Location, Organization, Provider
from apps.services.models import Service

from .models import (
    Availability,
    BillingEntity,
    CalculatedSlot,
    SchedulingRule,
    ServiceAvailabilityConfig,
)
from .recurrence import (
    RecurrenceOption,
    create_recurrence_pattern,
    describe_recurrence,
    is_valid_recurrence_pattern,
)
from .services import Scope


class ServiceConfigSerializer(serializers.ModelSerializer):
    service_name = serializers.CharField(source="service.name", read_only=True)

    class Meta:
        model = ServiceAvailabilityConfig
        fields = [
            "id", "service", "service_name", "duration", "price", "show_price",
            "is_online_available", "is_in_person", "location",
        ]
        read_only_fields = fields


class AvailabilitySerializer(serializers.ModelSerializer):
    services = ServiceConfigSerializer(source="service_configs", many=True, read_only=True)
    recurrence_description = serializers.SerializerMethodField()
    duration_minutes = serializers.IntegerField(read_only=True)
    provider_name = serializers.CharField(source="provider.name", read_only=True)

    class Meta:
        model = Availability
        fields = [
            "id", "provider", "provider_name", "organization", "location",
            "created_by", "accepted_by", "accepted_at",
            "start", "end", "duration_minutes",
            "is_recurring", "recurrence_pattern", "recurrence_description", "series_id",
            "scheduling_rule", "scheduling_interval",
            "is_online_available", "requires_confirmation", "billing_entity",
            "status", "rejection_reason", "cancellation_reason",
            "services", "created_at", "updated_at",
        ]
        read_only_fields = fields

    def get_recurrence_description(self, obj: Availability) -> str:
        return describe_recurrence(obj.recurrence_pattern)


# ---- write payloads ----

class ServiceConfigInputSerializer(serializers.Serializer):
    service = serializers.PrimaryKeyRelatedField(queryset=Service.objects.active())
    duration = serializers.IntegerField(min_value=1, required=False)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    show_price = serializers.BooleanField(required=False, default=True)
    is_online_available = serializers.BooleanField(required=False, default=False)
    is_in_person = serializers.BooleanField(required=False, default=True)
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )

    def validate(self, attrs):
        if not attrs.get("is_online_available") and not attrs.get("is_in_person", True):
            raise serializers.ValidationError("A service must be offered online, in person, or both.")
        return attrs


class RecurrenceInputSerializer(serializers.Serializer):
    option = serializers.ChoiceField(choices=RecurrenceOption.choices)
    custom_days = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6), required=False, allow_empty=True
    )
    end_date = serializers.DateField(required=False, allow_null=True)


def _unique_services(items):
    ids = [item["service"].id for item in items]
    if len(ids) != len(set(ids)):
        raise serializers.ValidationError("Each service can only be configured once.")
    return items


class AvailabilityCreateSerializer(serializers.Serializer):
    provider = serializers.PrimaryKeyRelatedField(queryset=Provider.objects.filter(is_active=True))
    organization = serializers.PrimaryKeyRelatedField(
        queryset=Organization.objects.all(), required=False, allow_null=True
    )
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    recurrence = RecurrenceInputSerializer(required=False, allow_null=True)
    scheduling_rule = serializers.ChoiceField(
        choices=SchedulingRule.choices, required=False, default=SchedulingRule.CONTINUOUS
    )
    scheduling_interval = serializers.IntegerField(min_value=1, max_value=1440, required=False, allow_null=True)
    is_online_available = serializers.BooleanField(required=False, default=False)
    requires_confirmation = serializers.BooleanField(required=False, default=False)
    billing_entity = serializers.ChoiceField(choices=BillingEntity.choices, required=False, allow_null=True)
    services = ServiceConfigInputSerializer(many=True)

    def validate_services(self, value):
        if not value:
            raise serializers.ValidationError("At least one service must be selected.")
        return _unique_services(value)

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError({"end": "End must be after start."})

        rec = attrs.pop("recurrence", None)
        if rec and rec["option"] != RecurrenceOption.NONE:
            pattern = create_recurrence_pattern(
                rec["option"], attrs["start"], rec.get("custom_days"), rec.get("end_date")
            )
            if not is_valid_recurrence_pattern(pattern):
                raise serializers.ValidationError({"recurrence": "Custom recurrence needs at least one day."})
            attrs["recurrence_pattern"] = pattern
        return attrs


class AvailabilityUpdateSerializer(serializers.Serializer):
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )
    scheduling_rule = serializers.ChoiceField(choices=SchedulingRule.choices, required=False)
    scheduling_interval = serializers.IntegerField(min_value=1, max_value=1440, required=False, allow_null=True)
    is_online_available = serializers.BooleanField(required=False)
    requires_confirmation = serializers.BooleanField(required=False)
    billing_entity = serializers.ChoiceField(choices=BillingEntity.choices, required=False)
    services = ServiceConfigInputSerializer(many=True, required=False)
    scope = serializers.ChoiceField(choices=Scope.values, required=False, default=Scope.SINGLE)

    def validate_services(self, value):
        if not value:
            raise serializers.ValidationError("At least one service must be selected.")
        return _unique_services(value)

    def validate(self, attrs):
        instance = self.context.get("availability")
        start = attrs.get("start", getattr(instance, "start", None))
        end = attrs.get("end", getattr(instance, "end", None))
        if start and end and end <= start:
            raise serializers.ValidationError({"end": "End must be after start."})
        return attrs


class RejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)


class AcceptSeriesSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=["all", "future_only"], required=False, default="all")


class CalculatedSlotSerializer(serializers.ModelSerializer):
    provider = serializers.IntegerField(source="availability.provider_id", read_only=True)
    provider_name = serializers.CharField(source="availability.provider.name", read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True)
    is_in_person = serializers.SerializerMethodField()
    requires_confirmation = serializers.BooleanField(
        source="availability.requires_confirmation", read_only=True
    )

    class Meta:
        model = CalculatedSlot
        fields = [
            "id", "availability", "provider", "provider_name", "service", "service_name",
            "start", "end", "duration", "price", "is_online_available", "is_in_person",
            "requires_confirmation", "status",
        ]
        read_only_fields = fields

    def get_is_in_person(self, obj: CalculatedSlot) -> bool:
        return bool(obj.service_config and obj.service_config.is_in_person)
