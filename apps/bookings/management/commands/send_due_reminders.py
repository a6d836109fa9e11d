# apps/bookings/management/commands/send_due_reminders.py
from django.core.management.base import BaseCommand
from django.utils import timezone

from apps.bookings.tasks import REMINDERS, due_reminders, send_booking_email


class Command(BaseCommand):
    help = "Send due booking reminders (24h & 2h). Use --dry-run to preview only."

    def add_arguments(self, parser):
        parser.add_argument("--window", type=int, default=None, help="Window in minutes around the target time")
        parser.add_argument("--kind", choices=["both", "24h", "2h"], default="both", help="Which reminders to send")
        parser.add_argument("--dry-run", action="store_true", help="Preview only; do not send emails")

    def handle(self, *args, **opts):
        now = timezone.now()
        wanted = {"24h", "2h"} if opts["kind"] == "both" else {opts["kind"]}

        total = 0
        for label, hours, sent_field in REMINDERS:
            if label not in wanted:
                continue

            count = 0
            for booking in due_reminders(hours, sent_field, window_minutes=opts["window"], now=now):
                if not booking.recipient_email:
                    continue

                if opts["dry_run"]:
                    self.stdout.write(
                        f"[DRY RUN] would send {label} reminder for {booking.reference} @ {booking.start.isoformat()}"
                    )
                    count += 1
                    continue

                send_booking_email.delay(booking.id, kind="reminder")
                setattr(booking, sent_field, now)
                booking.save(update_fields=[sent_field])

                self.stdout.write(self.style.SUCCESS(f"sent {label} reminder for {booking.reference}"))
                count += 1

            self.stdout.write(self.style.SUCCESS(f"{label}: {count} reminder(s)"))
            total += count

        self.stdout.write(self.style.SUCCESS(f"Done. Total: {total}"))
