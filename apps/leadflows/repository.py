# apps/leadflows/repository.py
"""
Persistance des flows versionnés.

Chaque ``save_draft`` ajoute une ligne ``flow_versions`` (version = max + 1,
jamais de mise à jour d'une ligne existante). ``publish`` bascule le dernier
brouillon en publié et recopie le résumé (nom/slug/style) sur la ligne ``flows``.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Max, Q
from django.utils import timezone

from .conf import get_settings
from .constants import AuditAction, FlowStatus, VersionStatus
from .exceptions import FlowNotFoundError, FlowValidationError, VersionConflictError
from .models import Flow, FlowAudit, FlowVersion
from .schema.payload import FlowPayload
from .schema.validator import FlowError, validate, validate_or_raise

log = logging.getLogger("leadflows.repository")


@dataclass(frozen=True, slots=True)
class PublishedFlow:
    payload: FlowPayload
    flow_id: uuid.UUID
    version: int


@dataclass(frozen=True, slots=True)
class SavedDraft:
    flow_id: uuid.UUID
    version: int


@dataclass(frozen=True, slots=True)
class PublishedVersion:
    version: int


@dataclass(frozen=True, slots=True)
class FlowSummary:
    id: uuid.UUID
    name: str
    slug: str
    status: str
    latest_version: Optional[int]
    published_version: Optional[int]
    updated_at: datetime


# ------------------------------------------------------------
# helpers
# ------------------------------------------------------------

def _coerce_uuid(flow_id: Any) -> Optional[uuid.UUID]:
    if isinstance(flow_id, uuid.UUID):
        return flow_id
    try:
        return uuid.UUID(str(flow_id))
    except (TypeError, ValueError, AttributeError):
        return None


def _lock_flow(flow_id: Any) -> Flow:
    uid = _coerce_uuid(flow_id)
    flow = Flow.objects.select_for_update().filter(pk=uid).first() if uid else None
    if flow is None:
        raise FlowNotFoundError(f"Flow {flow_id} not found")
    return flow


def _current_max_version(flow: Flow) -> int:
    return FlowVersion.objects.filter(flow=flow).aggregate(m=Max("version"))["m"] or 0


def _audit(flow_id: uuid.UUID, action: str, **meta: Any) -> None:
    FlowAudit.objects.create(flow_id=flow_id, action=action, meta=meta)


def _load(document: Any, *, flow_id: Any, version: int) -> Optional[FlowPayload]:
    result = validate(document)
    if not result.ok:
        log.error(
            "stored_payload_invalid flow=%s version=%s errors=%s",
            flow_id, version, "; ".join(f"{e.path}: {e.message}" for e in result.errors[:3]),
        )
        return None
    return result.payload


# ------------------------------------------------------------
# lectures
# ------------------------------------------------------------

def get_published_by_slug(slug: str) -> Optional[PublishedFlow]:
    """
    Dernière version publiée portant ce slug, ou None.

    Le flow doit être actif et porter encore ce slug: après un renommage
    publié, les anciennes versions ne sont plus servies sous l'ancien slug.
    """
    row = (
        FlowVersion.objects.filter(
            slug=slug,
            status=VersionStatus.PUBLISHED,
            flow__slug=slug,
            flow__status=FlowStatus.ACTIVE,
        )
        .order_by("-version")
        .first()
    )
    if row is None:
        return None
    payload = _load(row.payload, flow_id=row.flow_id, version=row.version)
    if payload is None:
        return None
    return PublishedFlow(payload=payload, flow_id=row.flow_id, version=row.version)


def get_draft_version(flow_id: Any) -> Optional[FlowPayload]:
    uid = _coerce_uuid(flow_id)
    if uid is None:
        return None
    row = FlowVersion.objects.filter(flow_id=uid, status=VersionStatus.DRAFT).order_by("-version").first()
    if row is None:
        return None
    return _load(row.payload, flow_id=uid, version=row.version)


def list_flows() -> List[FlowSummary]:
    qs = Flow.objects.annotate(
        latest_version=Max("versions__version"),
        published_version=Max("versions__version", filter=Q(versions__status=VersionStatus.PUBLISHED)),
    ).order_by("-updated_at")
    return [
        FlowSummary(
            id=f.pk,
            name=f.name,
            slug=f.slug,
            status=f.status,
            latest_version=f.latest_version,
            published_version=f.published_version,
            updated_at=f.updated_at,
        )
        for f in qs
    ]


# ------------------------------------------------------------
# écritures
# ------------------------------------------------------------

def save_draft(flow_id: Any, payload: Any) -> SavedDraft:
    """
    Valide puis ajoute une version brouillon. ``flow_id=None`` crée le flow.
    Lève FlowValidationError, FlowNotFoundError ou VersionConflictError.
    """
    payload = validate_or_raise(payload)

    with transaction.atomic():
        if flow_id is None:
            flow = Flow.objects.create(
                name=payload.name,
                slug=payload.slug,
                description=payload.description or "",
                status=FlowStatus.DRAFT,
                settings=payload.settings.to_document(),
                google_ads_config=payload.google_ads_config.to_document(),
                style_config=payload.style_config.to_document(),
            )
        else:
            flow = _lock_flow(flow_id)

        version = _current_max_version(flow) + 1
        document = payload.model_copy(update={"id": str(flow.pk)}).to_document()
        try:
            with transaction.atomic():
                FlowVersion.objects.create(
                    flow=flow,
                    version=version,
                    slug=payload.slug,
                    status=VersionStatus.DRAFT,
                    payload=document,
                )
        except IntegrityError as exc:
            log.warning("draft_version_conflict flow=%s version=%s", flow.pk, version)
            raise VersionConflictError(flow.pk, version) from exc

        _audit(flow.pk, AuditAction.SAVE_DRAFT, version=version)
        Flow.objects.filter(pk=flow.pk).update(updated_at=timezone.now())

    log.info("draft_saved flow=%s version=%s slug=%s", flow.pk, version, payload.slug)
    return SavedDraft(flow_id=flow.pk, version=version)


def save_draft_with_retry(flow_id: Any, payload: Any, retries: Optional[int] = None) -> SavedDraft:
    """``save_draft`` en relançant les conflits de version (relecture du max à chaque essai)."""
    if retries is None:
        retries = get_settings().conflict_retries
    attempt = 0
    while True:
        try:
            return save_draft(flow_id, payload)
        except VersionConflictError:
            attempt += 1
            if attempt > retries:
                raise
            log.warning("draft_conflict_retry flow=%s attempt=%s/%s", flow_id, attempt, retries)


def publish(flow_id: Any) -> PublishedVersion:
    with transaction.atomic():
        flow = _lock_flow(flow_id)
        versions = flow.versions.all()
        draft = versions.filter(status=VersionStatus.DRAFT).order_by("-version").first()
        last_published = versions.filter(status=VersionStatus.PUBLISHED).aggregate(m=Max("version"))["m"] or 0
        if draft is None or draft.version < last_published:
            raise FlowNotFoundError(f"No draft to publish for flow {flow_id}")

        payload = validate_or_raise(draft.payload)
        clash = (
            Flow.objects.filter(slug=payload.slug, status=FlowStatus.ACTIVE)
            .exclude(pk=flow.pk)
            .exists()
        )
        if clash:
            raise FlowValidationError([FlowError("slug", f"Slug '{payload.slug}' is already used by an active flow")])

        draft.status = VersionStatus.PUBLISHED
        draft.published_at = timezone.now()
        draft.save(update_fields=["status", "published_at"])

        flow.name = payload.name
        flow.slug = payload.slug
        flow.description = payload.description or ""
        flow.settings = payload.settings.to_document()
        flow.google_ads_config = payload.google_ads_config.to_document()
        flow.style_config = payload.style_config.to_document()
        flow.status = FlowStatus.ACTIVE
        flow.save()

        _audit(flow.pk, AuditAction.PUBLISH, version=draft.version, slug=payload.slug)

    log.info("flow_published flow=%s version=%s slug=%s", flow.pk, draft.version, payload.slug)
    return PublishedVersion(version=draft.version)


def set_flow_status(flow_id: Any, status: str) -> Flow:
    """Met en pause / archive / réactive un flow. Réactiver exige une version publiée."""
    if status not in FlowStatus.values or status == FlowStatus.DRAFT:
        raise ValueError(f"Unsupported flow status '{status}'")
    with transaction.atomic():
        flow = _lock_flow(flow_id)
        if status == FlowStatus.ACTIVE:
            if not flow.versions.filter(status=VersionStatus.PUBLISHED).exists():
                raise FlowNotFoundError(f"Flow {flow_id} has no published version")
            if Flow.objects.filter(slug=flow.slug, status=FlowStatus.ACTIVE).exclude(pk=flow.pk).exists():
                raise FlowValidationError([FlowError("slug", f"Slug '{flow.slug}' is already used by an active flow")])
        previous = flow.status
        flow.status = status
        flow.save(update_fields=["status", "updated_at"])
        _audit(flow.pk, AuditAction.STATUS, previous=previous, status=status)
    log.info("flow_status flow=%s %s->%s", flow.pk, previous, status)
    return flow


def delete_flow(flow_id: Any) -> int:
    """Supprime le flow et toutes ses versions; renvoie le nombre de versions supprimées."""
    with transaction.atomic():
        flow = _lock_flow(flow_id)
        count = flow.versions.count()
        pk, slug = flow.pk, flow.slug
        flow.delete()
        _audit(pk, AuditAction.DELETE, slug=slug, versions=count)
    log.info("flow_deleted flow=%s slug=%s versions=%s", pk, slug, count)
    return count
