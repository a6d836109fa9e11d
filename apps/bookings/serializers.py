# apps/bookings/serializers.py
from __future__ import annotations

from rest_framework import serializers

from apps.availability.models import CalculatedSlot
from apps.providers.models import Location

from .models import AppointmentType, Booking, NotificationLog


class BookingSerializer(serializers.ModelSerializer):
    reference = serializers.CharField(read_only=True)
    client_name = serializers.CharField(read_only=True)
    appointment_type = serializers.CharField(read_only=True)
    provider_name = serializers.CharField(source="provider.name", read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True)
    location_name = serializers.CharField(source="location.name", read_only=True, default="")

    class Meta:
        model = Booking
        fields = [
            "id", "reference", "slot", "provider", "provider_name", "service", "service_name",
            "client", "client_name", "guest_name", "guest_email", "guest_whatsapp",
            "start", "end", "duration", "price",
            "appointment_type", "is_online", "is_in_person", "location", "location_name",
            "status", "notes", "confirmed_at", "cancelled_at",
            "created_at", "updated_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    # I only pick the slot; window, price and provider come from it.
    slot = serializers.PrimaryKeyRelatedField(queryset=CalculatedSlot.objects.all())
    appointment_type = serializers.ChoiceField(
        choices=AppointmentType.choices, default=AppointmentType.IN_PERSON
    )
    guest_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    guest_email = serializers.EmailField(required=False, allow_blank=True)
    guest_whatsapp = serializers.CharField(max_length=32, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        request = self.context.get("request")
        anonymous = request is None or not request.user.is_authenticated
        if anonymous:
            if not (attrs.get("guest_name") or "").strip():
                raise serializers.ValidationError({"guest_name": "Guests must give a name."})
            if not attrs.get("guest_email") and not attrs.get("guest_whatsapp"):
                raise serializers.ValidationError(
                    {"guest_email": "Guests must give an email address or a WhatsApp number."}
                )
        return attrs

    def guest_payload(self) -> dict:
        data = self.validated_data
        return {
            "name": data.get("guest_name", ""),
            "email": data.get("guest_email", ""),
            "whatsapp": data.get("guest_whatsapp", ""),
        }


class BookingUpdateSerializer(serializers.Serializer):
    guest_name = serializers.CharField(max_length=200, required=False)
    guest_email = serializers.EmailField(required=False, allow_blank=True)
    guest_whatsapp = serializers.CharField(max_length=32, required=False, allow_blank=True)
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True)
    appointment_type = serializers.ChoiceField(choices=AppointmentType.choices, required=False)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class NotificationLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationLog
        fields = [
            "id", "booking", "channel", "kind", "recipient", "status", "error",
            "booking_reference", "provider_name", "client_name", "service_name",
            "appointment_time", "created_at",
        ]
        read_only_fields = fields
