# apps/leadflows/migration.py
"""
Conversion one-shot du schéma relationnel historique (flows / flow_steps /
flow_fields) vers un document FlowPayload versionné.

Idempotent: un flow qui possède déjà une version est ignoré (skipped), jamais
dupliqué. Tout ou rien: brouillon + publication dans la même transaction.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from django.db import DatabaseError, transaction
from django.utils import timezone

from . import repository
from .conf import get_settings
from .constants import AuditAction, FlowStatus
from .exceptions import FlowMigrationError, FlowValidationError, LeadFlowError
from .models import Flow, FlowAudit, LegacyFlowField, LegacyFlowStep
from .schema.payload import DEFAULT_STYLE_CONFIG
from .schema.validator import validate

log = logging.getLogger("leadflows.migration")

DEFAULT_FLOW_SETTINGS: Dict[str, Any] = {
    "allowBack": True,
    "showProgress": True,
    "saveProgress": False,
    "requireAuth": False,
    "captureUtm": True,
    "trackAnalytics": True,
}

DEFAULT_GOOGLE_ADS_CONFIG: Dict[str, Any] = {
    "conversionId": "",
    "conversionLabel": "",
    "remarketingTag": False,
    "enhancedConversions": False,
}

# opérateurs historiques -> opérateurs des règles de flow
LEGACY_OPERATORS = {
    "equals": "equals",
    "notEquals": "not_equals",
    "contains": "contains",
    "greaterThan": "gt",
    "lessThan": "lt",
}


@dataclass(slots=True)
class MigrationResult:
    flow_id: uuid.UUID
    migrated: bool = False
    skipped: bool = False
    version: Optional[int] = None
    published: bool = False
    reason: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(slots=True)
class BulkMigrationReport:
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    results: List[MigrationResult] = field(default_factory=list)


@dataclass(slots=True)
class MigrationStatus:
    total_flows: int
    migrated_flows: int
    needing_migration: int
    details: List[Dict[str, Any]]


# ------------------------------------------------------------
# Lecture du schéma historique
# ------------------------------------------------------------

def needs_migration(flow: Flow) -> bool:
    return flow.legacy_steps.exists() and not flow.versions.exists()


def _translate_condition(raw: Any, where: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise FlowMigrationError(f"{where}: condition must be an object")
    source = raw.get("field")
    if not source:
        raise FlowMigrationError(f"{where}: condition without 'field'")
    op = LEGACY_OPERATORS.get(raw.get("operator"))
    if op is None:
        raise FlowMigrationError(f"{where}: unknown operator '{raw.get('operator')}'")
    return {"sourceId": str(source), "operator": op, "value": raw.get("value")}


def _field_rules(fld: LegacyFlowField) -> List[Dict[str, Any]]:
    raw = fld.conditional_logic
    if not raw:
        return []
    entries = raw if isinstance(raw, list) else [raw]
    rules = []
    for idx, entry in enumerate(entries):
        where = f"field '{fld.field_name}' conditional_logic[{idx}]"
        cond = _translate_condition(entry, where)
        action = entry.get("action", "show")
        if action == "skip":
            action = "hide"
        if action not in ("show", "hide"):
            # 'require' n'a pas d'équivalent dans les règles de flow
            log.warning("legacy_rule_dropped %s action=%s", where, action)
            continue
        rules.append({
            "target": {"scope": "field", "id": str(fld.pk)},
            "action": action,
            "conditions": [cond],
            "join": "AND",
        })
    return rules


def _step_rules(step: LegacyFlowStep) -> List[Dict[str, Any]]:
    raw = step.skip_logic
    if not raw:
        return []
    if not isinstance(raw, dict):
        raise FlowMigrationError(f"step '{step.title or step.pk}' skip_logic must be an object")
    if raw.get("action", "skip") != "skip":
        log.warning("legacy_rule_dropped step=%s action=%s", step.pk, raw.get("action"))
        return []
    conditions = [
        _translate_condition(c, f"step '{step.title or step.pk}' skip_logic.conditions[{idx}]")
        for idx, c in enumerate(raw.get("conditions") or [])
    ]
    if not conditions:
        return []
    return [{
        "target": {"scope": "step", "id": str(step.pk)},
        "action": "hide",
        "conditions": conditions,
        "join": "AND",
    }]


def _validation_rules(raw: Any) -> Dict[str, Any]:
    # ancien format liste: [{"type": "minLength", "value": 3, "message": "..."}]
    if isinstance(raw, list):
        out: Dict[str, Any] = {}
        for rule in raw:
            if isinstance(rule, dict) and rule.get("type"):
                out[rule["type"]] = rule.get("value", True)
                if rule.get("message"):
                    out["message"] = rule["message"]
        return out
    return dict(raw or {})


def _field_document(fld: LegacyFlowField) -> Dict[str, Any]:
    if not fld.field_name:
        raise FlowMigrationError(f"field {fld.pk} has no field_name")
    doc: Dict[str, Any] = {
        "id": str(fld.pk),
        "field_type": fld.field_type,
        "field_name": fld.field_name,
        "label": fld.label or "",
        "placeholder": fld.placeholder,
        "help_text": fld.help_text,
        "is_required": bool(fld.is_required),
        "validation_rules": _validation_rules(fld.validation_rules),
        "options": fld.options if isinstance(fld.options, list) else [],
        "default_value": fld.default_value,
    }
    return {k: v for k, v in doc.items() if v is not None}


def _collected_before(rule: Dict[str, Any], owner_order: int, source_orders: Dict[str, int]) -> bool:
    # source inconnue: laissée au validateur
    return all(
        source_orders.get(cond["sourceId"], -1) < owner_order
        for cond in rule["conditions"]
    )


def build_payload(flow: Flow) -> Dict[str, Any]:
    """Document FlowPayload construit 1:1 depuis les tables historiques (non validé)."""
    steps = list(flow.legacy_steps.order_by("step_order", "created_at").prefetch_related("legacy_fields"))
    step_docs: List[Dict[str, Any]] = []
    source_orders: Dict[str, int] = {}
    pending: List[Tuple[int, str, Dict[str, Any]]] = []
    for order, step in enumerate(steps):
        fields = sorted(step.legacy_fields.all(), key=lambda f: f.field_order)
        doc = {
            "id": str(step.pk),
            # l'ancien éditeur numérotait à partir de 1: on renumérote 0..N-1
            "step_order": order,
            "step_type": step.step_type,
            "title": step.title or "",
            "subtitle": step.subtitle,
            "content": step.content,
            "button_text": step.button_text or get_settings().default_button_text,
            "is_required": True if step.is_required is None else step.is_required,
            "settings": dict(step.settings or {}),
            "fields": [_field_document(f) for f in fields],
        }
        step_docs.append({k: v for k, v in doc.items() if v is not None})
        for fld in fields:
            source_orders.setdefault(fld.field_name, order)

        if step.navigation_logic:
            # branchements jump/targetFlow: pas d'équivalent dans les règles de flow
            log.warning("legacy_rule_dropped step=%s navigation_logic", step.pk)
        pending.extend((order, f"step={step.pk} skip_logic", r) for r in _step_rules(step))
        for fld in fields:
            pending.extend((order, f"field={fld.field_name} conditional_logic", r) for r in _field_rules(fld))

    enforce = get_settings().enforce_logic_ordering
    logic: List[Dict[str, Any]] = []
    for owner_order, where, rule in pending:
        if enforce and not _collected_before(rule, owner_order, source_orders):
            sources = ",".join(c["sourceId"] for c in rule["conditions"])
            log.warning("legacy_rule_dropped %s reason=source_not_collected_before source=%s", where, sources)
            continue
        logic.append(rule)

    return {
        "id": str(flow.pk),
        "name": flow.name,
        "slug": flow.slug,
        "description": flow.description or "",
        "status": flow.status,
        "settings": {**DEFAULT_FLOW_SETTINGS, **(flow.settings or {})},
        "google_ads_config": {**DEFAULT_GOOGLE_ADS_CONFIG, **(flow.google_ads_config or {})},
        "style_config": {**DEFAULT_STYLE_CONFIG, **(flow.style_config or {})},
        "steps": step_docs,
        "logic": logic,
        "metadata": {
            "migrated": True,
            "migratedAt": timezone.now().isoformat(),
            "category": "migrated",
            "tags": ["legacy-migration"],
        },
    }


def _get_flow(flow_id: Any) -> Flow:
    try:
        uid = flow_id if isinstance(flow_id, uuid.UUID) else uuid.UUID(str(flow_id))
    except (TypeError, ValueError, AttributeError):
        raise FlowMigrationError(f"Legacy flow {flow_id} not found") from None
    flow = Flow.objects.filter(pk=uid).first()
    if flow is None:
        raise FlowMigrationError(f"Legacy flow {flow_id} not found")
    return flow


# ------------------------------------------------------------
# Migration
# ------------------------------------------------------------

def migrate_flow(flow_id: Any) -> MigrationResult:
    flow = _get_flow(flow_id)

    if flow.versions.exists():
        log.info("migration_skipped flow=%s reason=already_migrated", flow.pk)
        return MigrationResult(flow_id=flow.pk, skipped=True, reason="already migrated")
    if not flow.legacy_steps.exists():
        log.info("migration_skipped flow=%s reason=no_legacy_data", flow.pk)
        return MigrationResult(flow_id=flow.pk, skipped=True, reason="no legacy data")

    try:
        document = build_payload(flow)
    except FlowMigrationError as exc:
        log.warning("migration_failed flow=%s error=%s", flow.pk, exc)
        return MigrationResult(flow_id=flow.pk, errors=[str(exc)])

    checked = validate(document)
    if not checked.ok:
        errors = [f"{e.path}: {e.message}" for e in checked.errors]
        log.warning("migration_invalid flow=%s errors=%d", flow.pk, len(errors))
        return MigrationResult(flow_id=flow.pk, errors=errors)

    publish_it = flow.status == FlowStatus.ACTIVE
    try:
        with transaction.atomic():
            saved = repository.save_draft(flow.pk, checked.payload)
            if publish_it:
                repository.publish(flow.pk)
            FlowAudit.objects.create(
                flow_id=flow.pk,
                action=AuditAction.MIGRATE,
                meta={"version": saved.version, "published": publish_it},
            )
    except FlowValidationError as exc:
        return MigrationResult(flow_id=flow.pk, errors=[f"{e.path}: {e.message}" for e in exc.errors])
    except LeadFlowError as exc:
        return MigrationResult(flow_id=flow.pk, errors=[str(exc)])

    log.info("flow_migrated flow=%s version=%s published=%s", flow.pk, saved.version, publish_it)
    return MigrationResult(flow_id=flow.pk, migrated=True, version=saved.version, published=publish_it)


def migrate_all_flows() -> BulkMigrationReport:
    report = BulkMigrationReport()
    for flow in Flow.objects.order_by("created_at"):
        report.total += 1
        label = f"{flow.name} ({flow.slug})"
        try:
            result = migrate_flow(flow.pk)
        except FlowMigrationError as exc:
            report.errors.append(f"{label}: {exc}")
            continue
        except DatabaseError as exc:
            log.exception("migration_db_error flow=%s", flow.pk)
            report.errors.append(f"{label}: {exc}")
            continue
        report.results.append(result)
        if result.migrated:
            report.migrated += 1
        elif result.skipped:
            report.skipped += 1
        if result.errors:
            report.errors.append(f"{label}: {', '.join(result.errors)}")

    log.info(
        "bulk_migration_done total=%s migrated=%s skipped=%s errors=%s",
        report.total, report.migrated, report.skipped, len(report.errors),
    )
    return report


def migration_status() -> MigrationStatus:
    details = []
    needing = 0
    for flow in Flow.objects.order_by("created_at"):
        pending = needs_migration(flow)
        needing += int(pending)
        details.append({"id": str(flow.pk), "name": flow.name, "slug": flow.slug, "migrated": not pending})
    return MigrationStatus(
        total_flows=len(details),
        migrated_flows=len(details) - needing,
        needing_migration=needing,
        details=details,
    )
