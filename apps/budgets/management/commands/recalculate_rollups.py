from django.core.management.base import BaseCommand
from apps.budgets.models import NODE_MODELS
from apps.budgets.rollup import recalculate_all

ROLLUP_KINDS = sorted(kind for kind, model in NODE_MODELS.items() if model.IS_ROLLUP)


class Command(BaseCommand):
    help = 'Recomputes rolled-up totals, rates and statuses for every live allocation, project and fund record'

    def add_arguments(self, parser):
        parser.add_argument('--kind', choices=ROLLUP_KINDS, help='Only recalculate one kind of record')

    def handle(self, *args, **options):
        kind = options.get('kind')
        model = NODE_MODELS[kind] if kind else None

        self.stdout.write(f"Recalculating {kind or 'all rollup records'}...")
        counts = recalculate_all(model)

        for label, count in counts.items():
            self.stdout.write(f"  {label}: {count}")
        self.stdout.write(self.style.SUCCESS(f"Recalculated {sum(counts.values())} record(s)."))
