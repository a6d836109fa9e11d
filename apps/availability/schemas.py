# apps/availability/schemas.py
from rest_framework import serializers
from drf_spectacular.utils import OpenApiExample


# I describe domain error bodies (400/403/409).
class DomainError400Serializer(serializers.Serializer):
    detail = serializers.CharField()
    code = serializers.CharField()
    errors = serializers.ListField(child=serializers.CharField(), required=False)


class SlotGenerationResultSerializer(serializers.Serializer):
    slots_generated = serializers.IntegerField()
    slots_conflicted = serializers.IntegerField()
    slots_preserved = serializers.IntegerField(required=False)
    errors = serializers.ListField(child=serializers.CharField())


class WorkflowStatsSerializer(serializers.Serializer):
    total_proposals = serializers.IntegerField()
    pending = serializers.IntegerField()
    accepted = serializers.IntegerField()
    rejected = serializers.IntegerField()
    cancelled = serializers.IntegerField()
    slots_generated = serializers.IntegerField()
    slots_booked = serializers.IntegerField()
    utilization_rate = serializers.FloatField()


class SlotStatsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    available = serializers.IntegerField()
    booked = serializers.IntegerField()
    blocked = serializers.IntegerField()
    invalid = serializers.IntegerField()
    utilization_rate = serializers.FloatField()


class AvailabilityStatsSerializer(serializers.Serializer):
    workflow = WorkflowStatsSerializer()
    slots = SlotStatsSerializer(required=False)


# ---- Swagger example payloads ----

CreateAvailabilityExample = OpenApiExample(
    "Weekly Monday clinic",
    value={
        "provider": 1,
        "start": "2026-03-02T09:00:00+02:00",
        "end": "2026-03-02T12:00:00+02:00",
        "recurrence": {"option": "WEEKLY", "end_date": "2026-03-30"},
        "scheduling_rule": "CONTINUOUS",
        "is_online_available": True,
        "services": [
            {"service": 1, "duration": 30, "price": "450.00", "is_online_available": True},
        ],
    },
)

UpdateAvailabilityExample = OpenApiExample(
    "Start later for this and future weeks",
    value={"start": "2026-03-09T10:00:00+02:00", "scope": "future"},
)
