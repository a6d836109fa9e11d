# apps/bookings/ics.py
from __future__ import annotations

from datetime import datetime, timezone as py_tz

from .models import BookingStatus

ICS_STATUS = {
    BookingStatus.CANCELLED: "CANCELLED",
    BookingStatus.CONFIRMED: "CONFIRMED",
    BookingStatus.COMPLETED: "CONFIRMED",
}


# escape text per RFC 5545 (commas, semicolons, backslashes, newlines)
def _ics_escape(value: str) -> str:
    if value is None:
        return ""
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
        .replace("\r", "")
    )


def _fmt(dt: datetime) -> str:
    # everything goes out as UTC (Z)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=py_tz.utc)
    return dt.astimezone(py_tz.utc).strftime("%Y%m%dT%H%M%SZ")


def _location_text(booking) -> str:
    if booking.is_online:
        return "Online"
    if booking.location_id:
        loc = booking.location
        return f"{loc.name}, {loc.address}" if loc.address else loc.name
    return ""


def event_lines_for_booking(booking) -> list[str]:
    uid = f"booking-{booking.id}@medbookings"
    summary = f"{booking.service.name} with {booking.provider.name}"
    description_parts = [
        f"Reference: {booking.reference}",
        f"Client: {booking.client_name}",
        f"Status: {booking.get_status_display()}",
    ]
    if booking.notes:
        description_parts.append(f"Notes: {booking.notes}")
    description = "\\n".join(_ics_escape(p) for p in description_parts)

    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{_fmt(booking.updated_at or booking.start)}",
        f"DTSTART:{_fmt(booking.start)}",
        f"DTEND:{_fmt(booking.end)}",
        f"SUMMARY:{_ics_escape(summary)}",
        f"DESCRIPTION:{description}",
        f"LOCATION:{_ics_escape(_location_text(booking))}",
        f"STATUS:{ICS_STATUS.get(booking.status, 'TENTATIVE')}",
        "END:VEVENT",
    ]
    return lines


def calendar_text_for_bookings(bookings, method: str = "PUBLISH") -> str:
    # one or more VEVENTs wrapped in a VCALENDAR
    lines = [
        "BEGIN:VCALENDAR",
        "PRODID:-//MedBookings//Bookings//EN",
        "VERSION:2.0",
        "CALSCALE:GREGORIAN",
        f"METHOD:{method}",
    ]
    for b in bookings:
        lines.extend(event_lines_for_booking(b))
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
