from django.core.management.base import BaseCommand, CommandError

from apps.leadflows.exceptions import FlowMigrationError
from apps.leadflows.migration import migrate_all_flows, migrate_flow, migration_status
from apps.leadflows.tasks import migrate_all_flows as migrate_all_flows_task
from apps.leadflows.tasks import migrate_flow as migrate_flow_task


class Command(BaseCommand):
    help = "Migre les flows du schéma relationnel historique vers des payloads versionnés."

    def add_arguments(self, parser):
        target = parser.add_mutually_exclusive_group()
        target.add_argument("--flow", dest="flow_id", help="UUID du flow à migrer")
        target.add_argument("--all", action="store_true", help="Migre tous les flows")
        parser.add_argument("--async", dest="run_async", action="store_true", help="Passe par Celery (queue leadflows)")

    def handle(self, *args, **options):
        flow_id = options.get("flow_id")
        if not flow_id and not options["all"]:
            self._print_status()
            return

        if options["run_async"]:
            if flow_id:
                res = migrate_flow_task.delay(flow_id)
            else:
                res = migrate_all_flows_task.delay()
            self.stdout.write(self.style.SUCCESS(f"Tâche envoyée: {res.id}"))
            return

        if flow_id:
            try:
                result = migrate_flow(flow_id)
            except FlowMigrationError as exc:
                raise CommandError(str(exc)) from exc
            if result.errors:
                for e in result.errors:
                    self.stderr.write(f"  - {e}")
                raise CommandError(f"Migration échouée pour {flow_id}")
            if result.skipped:
                self.stdout.write(self.style.WARNING(f"{result.flow_id}: ignoré ({result.reason})"))
            else:
                extra = " + publié" if result.published else ""
                self.stdout.write(self.style.SUCCESS(f"{result.flow_id}: migré v{result.version}{extra}"))
            return

        report = migrate_all_flows()
        self.stdout.write(
            f"Total={report.total} migrés={report.migrated} ignorés={report.skipped} erreurs={len(report.errors)}"
        )
        for e in report.errors:
            self.stderr.write(self.style.ERROR(f"  - {e}"))

    def _print_status(self):
        status = migration_status()
        self.stdout.write(
            f"Flows={status.total_flows} migrés={status.migrated_flows} à migrer={status.needing_migration}"
        )
        for row in status.details:
            mark = "✔" if row["migrated"] else "…"
            self.stdout.write(f"  {mark} {row['slug']} ({row['id']})")
