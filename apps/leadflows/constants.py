from django.db import models


class FlowStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    ACTIVE = "active", "Active"
    PAUSED = "paused", "Paused"
    ARCHIVED = "archived", "Archived"


class VersionStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"


class AuditAction(models.TextChoices):
    SAVE_DRAFT = "save_draft", "Draft saved"
    PUBLISH = "publish", "Published"
    STATUS = "status", "Status changed"
    MIGRATE = "migrate", "Migrated from legacy tables"
    DELETE = "delete", "Deleted"


FIELD_TYPES = (
    "text", "email", "phone", "select", "radio", "checkbox",
    "textarea", "date", "number", "zip", "hidden",
)

STEP_TYPES = (
    "form", "content", "quiz", "survey", "conditional", "thank_you",
    "single_page_landing", "image_gallery", "video", "file_upload",
    "rating", "testimonial", "countdown",
)

# Champs à choix: options obligatoires
CHOICE_FIELD_TYPES = ("select", "radio")
