import logging

from celery import shared_task

from .exceptions import FlowMigrationError
from .migration import migrate_all_flows as _migrate_all_flows
from .migration import migrate_flow as _migrate_flow

log_tasks = logging.getLogger("leadflows.tasks")


@shared_task(name="leadflows.migrate_all_flows", queue="leadflows")
def migrate_all_flows():
    report = _migrate_all_flows()
    log_tasks.info(
        "task_bulk_migration total=%s migrated=%s skipped=%s errors=%s",
        report.total, report.migrated, report.skipped, len(report.errors),
    )
    return {
        "total": report.total,
        "migrated": report.migrated,
        "skipped": report.skipped,
        "errors": report.errors,
    }


@shared_task(name="leadflows.migrate_flow", queue="leadflows")
def migrate_flow(flow_id: str):
    try:
        result = _migrate_flow(flow_id)
    except FlowMigrationError as exc:
        log_tasks.warning("task_migration_failed flow=%s error=%s", flow_id, exc)
        return {"flow_id": str(flow_id), "migrated": False, "skipped": False, "errors": [str(exc)]}
    log_tasks.info("task_migration flow=%s migrated=%s skipped=%s", result.flow_id, result.migrated, result.skipped)
    return {
        "flow_id": str(result.flow_id),
        "migrated": result.migrated,
        "skipped": result.skipped,
        "version": result.version,
        "published": result.published,
        "errors": result.errors,
    }
