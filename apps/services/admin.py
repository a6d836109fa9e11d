# apps/services/admin.py
from django.contrib import admin
from .models import Service


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "default_duration", "default_price", "display_priority", "is_active")
    list_editable = ("display_priority", "is_active")
    prepopulated_fields = {"slug": ("name",)}
    search_fields = ("name", "description")
