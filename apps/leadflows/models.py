import uuid

from django.db import models
from django.db.models import Q

from .constants import AuditAction, FlowStatus, VersionStatus


class Flow(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=120)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=16, choices=FlowStatus.choices, default=FlowStatus.DRAFT)

    # résumé dénormalisé, réécrit à chaque publication
    settings = models.JSONField(default=dict, blank=True)
    google_ads_config = models.JSONField(default=dict, blank=True)
    style_config = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "flows"
        ordering = ("-updated_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["slug"],
                condition=Q(status=FlowStatus.ACTIVE),
                name="uniq_active_flow_slug",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.slug})"


class FlowVersion(models.Model):
    flow = models.ForeignKey(Flow, on_delete=models.CASCADE, related_name="versions")
    version = models.PositiveIntegerField()
    # copie du slug du payload: la recherche publique passe par cette colonne
    slug = models.SlugField(max_length=120, blank=True, default="")
    status = models.CharField(max_length=16, choices=VersionStatus.choices, default=VersionStatus.DRAFT)
    payload = models.JSONField()
    created_at = models.DateTimeField(auto_now_add=True)
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "flow_versions"
        ordering = ("flow", "-version")
        constraints = [
            models.UniqueConstraint(fields=["flow", "version"], name="uniq_flow_version"),
        ]

    def __str__(self) -> str:
        return f"{self.flow_id} v{self.version} [{self.status}]"


class FlowAudit(models.Model):
    # simple UUID, pas de FK: l'historique survit à la suppression du flow
    flow_id = models.UUIDField(db_index=True)
    action = models.CharField(max_length=16, choices=AuditAction.choices)
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "flow_audit"
        ordering = ("-created_at", "-id")

    def __str__(self) -> str:
        return f"{self.action} {self.flow_id}"


# ------------------------------------------------------------
# Schéma relationnel historique (lu par la migration uniquement)
# ------------------------------------------------------------

class LegacyFlowStep(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    flow = models.ForeignKey(Flow, on_delete=models.CASCADE, related_name="legacy_steps")
    step_order = models.IntegerField(default=0)
    step_type = models.CharField(max_length=32)
    title = models.CharField(max_length=255, blank=True, default="")
    subtitle = models.CharField(max_length=255, blank=True, null=True)
    content = models.TextField(blank=True, null=True)
    button_text = models.CharField(max_length=100, blank=True, null=True)
    is_required = models.BooleanField(null=True, blank=True)
    settings = models.JSONField(default=dict, blank=True)
    skip_logic = models.JSONField(null=True, blank=True)
    navigation_logic = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "flow_steps"
        ordering = ("flow", "step_order")


class LegacyFlowField(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    step = models.ForeignKey(LegacyFlowStep, on_delete=models.CASCADE, related_name="legacy_fields")
    field_order = models.IntegerField(default=0)
    field_type = models.CharField(max_length=32)
    field_name = models.CharField(max_length=100)
    label = models.CharField(max_length=255, blank=True, default="")
    placeholder = models.CharField(max_length=255, blank=True, null=True)
    help_text = models.TextField(blank=True, null=True)
    is_required = models.BooleanField(null=True, blank=True)
    validation_rules = models.JSONField(null=True, blank=True)
    options = models.JSONField(null=True, blank=True)
    default_value = models.TextField(blank=True, null=True)
    conditional_logic = models.JSONField(null=True, blank=True)

    class Meta:
        db_table = "flow_fields"
        ordering = ("step", "field_order")
