# apps/providers/admin.py
from django.contrib import admin

from .models import Location, Organization, OrganizationMembership, Provider


@admin.register(Provider)
class ProviderAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "user", "email", "whatsapp", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "email", "user__username", "user__email")
    raw_id_fields = ("user",)


class MembershipInline(admin.TabularInline):
    model = OrganizationMembership
    extra = 0
    raw_id_fields = ("user",)


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "email")
    prepopulated_fields = {"slug": ("name",)}
    search_fields = ("name",)
    inlines = [MembershipInline]


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "organization", "address", "is_active")
    list_filter = ("is_active", "organization")
    search_fields = ("name", "address")
