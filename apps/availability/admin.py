# apps/availability/admin.py
from django.contrib import admin

from .models import Availability, CalculatedSlot, ServiceAvailabilityConfig


class ServiceConfigInline(admin.TabularInline):
    model = ServiceAvailabilityConfig
    extra = 0


@admin.register(Availability)
class AvailabilityAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "organization", "start", "end", "status", "scheduling_rule", "series_id")
    list_filter = ("status", "scheduling_rule", "is_recurring", "billing_entity")
    search_fields = ("provider__name", "organization__name", "series_id")
    raw_id_fields = ("provider", "created_by", "accepted_by")
    date_hierarchy = "start"
    inlines = [ServiceConfigInline]


@admin.register(CalculatedSlot)
class CalculatedSlotAdmin(admin.ModelAdmin):
    list_display = ("id", "availability", "service", "start", "end", "status", "price", "version")
    list_filter = ("status", "service", "is_online_available")
    raw_id_fields = ("availability", "service_config")
    date_hierarchy = "start"
