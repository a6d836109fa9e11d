# apps/providers/serializers.py
from rest_framework import serializers

from .models import Location, Organization, OrganizationMembership, Provider


class ProviderSerializer(serializers.ModelSerializer):
    class Meta:
        model = Provider
        fields = ["id", "name", "bio", "email", "whatsapp", "is_active"]
        read_only_fields = fields


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "name", "address", "is_active"]
        read_only_fields = fields


class OrganizationSerializer(serializers.ModelSerializer):
    my_role = serializers.SerializerMethodField()
    locations = LocationSerializer(many=True, read_only=True)

    class Meta:
        model = Organization
        fields = ["id", "name", "slug", "email", "my_role", "locations"]
        read_only_fields = fields

    def get_my_role(self, obj) -> str | None:
        request = self.context.get("request")
        if not request or not request.user.is_authenticated:
            return None
        m = OrganizationMembership.objects.filter(user=request.user, organization=obj).first()
        return m.role if m else None
