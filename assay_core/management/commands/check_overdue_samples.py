from django.core.management.base import BaseCommand
from django.utils import timezone

from assay_core.services.dashboard import overdue_samples


class Command(BaseCommand):
    help = "List samples past their due date that have not been reported"

    def handle(self, *args, **options):
        now = timezone.now()
        samples = overdue_samples(now).order_by("due_date")

        for s in samples:
            days = (now - s.due_date).days
            self.stdout.write(f"{s.code}\t{s.status}\t{s.site}\t{days}d overdue")

        self.stdout.write(self.style.SUCCESS(f"{samples.count()} overdue samples"))
