# apps/services/serializers.py
from rest_framework import serializers
from .models import Service


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = [
            "id", "name", "slug", "description",
            "default_duration", "default_price", "display_priority", "is_active",
        ]
        read_only_fields = fields
