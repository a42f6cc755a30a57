import sys

from django.core.management.base import BaseCommand

from apps.leadflows.models import FlowVersion
from apps.leadflows.schema.validator import validate


class Command(BaseCommand):
    help = "Revalide toutes les versions stockées (schéma + cross-checks)."

    def add_arguments(self, parser):
        parser.add_argument("--published-only", action="store_true", help="Ne vérifie que les versions publiées")

    def handle(self, *args, **options):
        self.stdout.write("=== LeadFlows Linter ===")

        qs = FlowVersion.objects.select_related("flow").order_by("flow__slug", "version")
        if options["published_only"]:
            qs = qs.filter(status="published")

        checked = 0
        errors = []
        for row in qs.iterator():
            checked += 1
            result = validate(row.payload)
            for err in result.errors:
                errors.append(f"Flow {row.flow.slug} v{row.version} [{row.status}], {err.path or '<root>'}: {err.message}")

        self.stdout.write(f"- Versions vérifiées: {checked}")
        if errors:
            self.stderr.write(self.style.ERROR("❌ Erreurs détectées:"))
            for e in errors:
                self.stderr.write(f"  - {e}")
            sys.exit(1)
        else:
            self.stdout.write(self.style.SUCCESS("✅ Payloads valides."))
