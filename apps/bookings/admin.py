# apps/bookings/admin.py
from django.contrib import admin
from .models import Booking, NotificationLog


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "service", "client", "guest_name", "start", "end", "status", "is_online")
    list_filter = ("status", "is_online", "provider", "start")
    search_fields = ("guest_name", "guest_email", "client__username", "provider__name", "service__name")
    raw_id_fields = ("slot", "client")
    readonly_fields = ("created_at", "updated_at", "confirmed_at", "cancelled_at")


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ("id", "booking_reference", "kind", "channel", "recipient", "status", "created_at")
    list_filter = ("channel", "kind", "status")
    search_fields = ("booking_reference", "recipient", "client_name", "provider_name")
    readonly_fields = [f.name for f in NotificationLog._meta.fields]
