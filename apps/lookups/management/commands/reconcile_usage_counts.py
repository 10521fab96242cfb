from django.core.management.base import BaseCommand
from apps.lookups.models import LOOKUP_MODELS
from apps.lookups.services import reconcile_usage_counts

class Command(BaseCommand):
    help = 'Recomputes lookup usage counters from the live records that reference them'

    def add_arguments(self, parser):
        parser.add_argument('--kind', choices=sorted(LOOKUP_MODELS), help='Only reconcile one lookup kind')

    def handle(self, *args, **options):
        kind = options.get('kind')
        self.stdout.write(f"Reconciling usage counters for {kind or 'all lookup kinds'}...")

        drift = reconcile_usage_counts(kind)

        for entry in drift:
            self.stdout.write(self.style.WARNING(
                f"{entry['kind']} {entry['code']}: stored {entry['stored']}, actual {entry['actual']}"
            ))

        if drift:
            self.stdout.write(self.style.SUCCESS(f"Corrected {len(drift)} usage counter(s)."))
        else:
            self.stdout.write(self.style.SUCCESS("All usage counters are in sync."))
