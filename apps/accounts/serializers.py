# apps/accounts/serializers.py
from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class CurrentUserSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source="id", read_only=True)
    roles = serializers.SerializerMethodField()
    is_provider = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ("user_id", "username", "email", "display_name", "phone", "roles", "is_provider")

    def get_roles(self, obj) -> list[str]:
        # role names drive client-side guards
        return sorted(obj.role_names)

    def get_is_provider(self, obj) -> bool:
        return hasattr(obj, "provider_profile")
