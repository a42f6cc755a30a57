# apps/leadflows/schema/payload.py
from __future__ import annotations

import re
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from ..conf import get_settings
from ..constants import CHOICE_FIELD_TYPES

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"
SLUG_PATTERN = r"^[a-z0-9-]+$"

FieldType = Literal[
    "text", "email", "phone", "select", "radio", "checkbox",
    "textarea", "date", "number", "zip", "hidden",
]
StepType = Literal[
    "form", "content", "quiz", "survey", "conditional", "thank_you",
    "single_page_landing", "image_gallery", "video", "file_upload",
    "rating", "testimonial", "countdown",
]
Operator = Literal["equals", "not_equals", "contains", "gt", "lt", "in"]
RuleAction = Literal["show", "hide", "enable", "disable"]


def _check_http_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


_JSON = TypeAdapter(Any)


def _document(value: Any) -> Any:
    """
    Sérialisation JSON par alias. Les champs déclarés à None sont omis; les
    clés libres (extras, dicts) sont gardées telles quelles, null compris.
    """
    if isinstance(value, BaseModel):
        out: Dict[str, Any] = {}
        for name, info in type(value).model_fields.items():
            item = getattr(value, name)
            if item is not None:
                out[info.alias or name] = _document(item)
        for key, item in (value.model_extra or {}).items():
            out[key] = _document(item)
        return out
    if isinstance(value, dict):
        return {str(k): _document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_document(v) for v in value]
    return _JSON.dump_python(value, mode="json")


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    def to_document(self) -> Dict[str, Any]:
        return _document(self)


class _OpenSchema(BaseModel):
    """Known keys are typed, anything else is kept as-is."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    def to_document(self) -> Dict[str, Any]:
        return _document(self)


# ------------------------------------------------------------
# Field
# ------------------------------------------------------------

class ValidationRules(_OpenSchema):
    required: Optional[bool] = None
    min_length: Optional[int] = Field(None, alias="minLength", ge=0)
    max_length: Optional[int] = Field(None, alias="maxLength", ge=0)
    pattern: Optional[str] = None
    message: Optional[str] = None
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regular expression: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _bounds(self) -> "ValidationRules":
        if self.min_length is not None and self.max_length is not None and self.min_length > self.max_length:
            raise ValueError("minLength cannot exceed maxLength")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min cannot exceed max")
        return self


class FieldOption(_Schema):
    label: str
    value: str
    is_default: Optional[bool] = Field(None, alias="isDefault")
    icon: Optional[str] = None

    @field_validator("value", "label", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class LegacyCondition(_Schema):
    """Ancien format embarqué (champ/step), converti en règles de flow à la migration."""

    field: str
    operator: Literal["equals", "notEquals", "contains", "greaterThan", "lessThan"]
    value: Union[str, int, float, bool]
    action: Literal["show", "hide", "require", "skip"] = "show"


class LegacySkipLogic(_Schema):
    conditions: List[LegacyCondition] = Field(default_factory=list)
    action: Literal["skip", "jump_to"] = "skip"
    target_step: Optional[Union[str, int]] = Field(None, alias="targetStep")


class LegacyNavigationLogic(_Schema):
    conditions: List[LegacyCondition] = Field(default_factory=list)
    target_step: Optional[Union[str, int]] = Field(None, alias="targetStep")
    target_flow: Optional[str] = Field(None, alias="targetFlow")


class FlowField(_Schema):
    id: str = Field(min_length=1)
    field_type: FieldType
    field_name: str = Field(min_length=1)
    label: str = ""
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    is_required: bool = False
    validation_rules: Optional[ValidationRules] = None
    options: List[FieldOption] = Field(default_factory=list)
    default_value: Any = None
    conditional_logic: Optional[List[LegacyCondition]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return value if value is None or isinstance(value, str) else str(value)

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        # "Oui" ou 3 => {"label": "Oui", "value": "Oui"}
        if not isinstance(value, list):
            return value
        out = []
        for item in value:
            if isinstance(item, (str, int, float)) and not isinstance(item, bool):
                out.append({"label": str(item), "value": str(item)})
            else:
                out.append(item)
        return out

    @field_validator("conditional_logic", mode="before")
    @classmethod
    def _single_rule_to_list(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value] if value else None
        return value

    @model_validator(mode="after")
    def _choices_declared(self) -> "FlowField":
        if self.field_type in CHOICE_FIELD_TYPES and not self.options:
            raise ValueError(f"{self.field_type} fields need at least one option")
        return self


# ------------------------------------------------------------
# Step
# ------------------------------------------------------------

def _default_button_text() -> str:
    return get_settings().default_button_text


class FlowStep(_Schema):
    id: str = Field(min_length=1)
    step_order: int = Field(ge=0)
    step_type: StepType
    title: str = ""
    subtitle: Optional[str] = None
    content: Optional[str] = None
    button_text: str = Field(default_factory=_default_button_text)
    is_required: bool = True
    skip_logic: Optional[LegacySkipLogic] = None
    navigation_logic: Optional[LegacyNavigationLogic] = None
    validation_rules: Optional[ValidationRules] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    redirect_url: Optional[str] = None
    redirect_delay: Optional[int] = Field(None, gt=0)
    fields: List[FlowField] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return value if value is None or isinstance(value, str) else str(value)

    @field_validator("redirect_url")
    @classmethod
    def _redirect_is_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)

    @field_validator("skip_logic", "navigation_logic", mode="before")
    @classmethod
    def _empty_legacy_is_none(cls, value: Any) -> Any:
        # l'éditeur historique écrivait {} pour "pas de logique"
        if isinstance(value, dict) and not value:
            return None
        return value


# ------------------------------------------------------------
# Style / settings / ads
# ------------------------------------------------------------

class StyleConfig(_Schema):
    primary_color: str = Field("#3B82F6", alias="primaryColor", pattern=HEX_COLOR)
    secondary_color: Optional[str] = Field(None, alias="secondaryColor", pattern=HEX_COLOR)
    background_color: str = Field("#FFFFFF", alias="backgroundColor", pattern=HEX_COLOR)
    button_style: Literal["rounded", "square", "pill"] = Field("rounded", alias="buttonStyle")
    layout: Literal["centered", "split", "full"] = "centered"
    font_family: str = Field("Inter", alias="fontFamily")
    logo_url: Optional[str] = Field(None, alias="logoUrl")
    hero_image_url: Optional[str] = Field(None, alias="heroImageUrl")
    background_image_url: Optional[str] = Field(None, alias="backgroundImageUrl")
    border_radius: float = Field(8, alias="borderRadius", ge=0, le=50)
    shadow_level: Literal["none", "sm", "md", "lg", "xl"] = Field("md", alias="shadowLevel")

    @field_validator("logo_url", "hero_image_url", "background_image_url")
    @classmethod
    def _image_is_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


DEFAULT_STYLE_CONFIG: Dict[str, Any] = StyleConfig().to_document()


class FlowSettings(_OpenSchema):
    allow_back: Optional[bool] = Field(None, alias="allowBack")
    show_progress: Optional[bool] = Field(None, alias="showProgress")
    save_progress: Optional[bool] = Field(None, alias="saveProgress")
    require_auth: Optional[bool] = Field(None, alias="requireAuth")
    capture_utm: Optional[bool] = Field(None, alias="captureUtm")
    track_analytics: Optional[bool] = Field(None, alias="trackAnalytics")

    @property
    def allows_back(self) -> bool:
        # non renseigné => retour autorisé
        return self.allow_back is not False


class GoogleAdsConfig(_OpenSchema):
    conversion_id: Optional[str] = Field(None, alias="conversionId")
    conversion_label: Optional[str] = Field(None, alias="conversionLabel")
    remarketing_tag: Optional[bool] = Field(None, alias="remarketingTag")
    enhanced_conversions: Optional[bool] = Field(None, alias="enhancedConversions")
    gtag_config: Optional[Dict[str, Any]] = Field(None, alias="gtagConfig")


# ------------------------------------------------------------
# Logic rules
# ------------------------------------------------------------

class LogicTarget(_Schema):
    scope: Literal["step", "field"]
    id: str = Field(min_length=1)


class LogicCondition(_Schema):
    source_id: str = Field(alias="sourceId", min_length=1)
    operator: Operator
    value: Any = None


class LogicRule(_Schema):
    target: LogicTarget
    action: RuleAction
    conditions: List[LogicCondition] = Field(min_length=1)
    join: Literal["AND", "OR"] = "AND"


# ------------------------------------------------------------
# Payload
# ------------------------------------------------------------

class FlowPayload(_Schema):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    slug: str = Field(pattern=SLUG_PATTERN)
    description: Optional[str] = None
    status: Literal["draft", "active", "paused", "archived"] = "draft"
    settings: FlowSettings = Field(default_factory=FlowSettings)
    google_ads_config: GoogleAdsConfig = Field(default_factory=GoogleAdsConfig)
    style_config: StyleConfig = Field(default_factory=StyleConfig)
    steps: List[FlowStep] = Field(default_factory=list)
    logic: List[LogicRule] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return value if value is None or isinstance(value, str) else str(value)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Flow name is required")
        return value

    # ---------- helpers ----------
    def ordered_steps(self) -> List[FlowStep]:
        # sorted() est stable: à ordre égal, l'ordre d'insertion gagne
        return sorted(self.steps, key=lambda s: s.step_order)

    def iter_fields(self) -> Iterator[Tuple[FlowStep, FlowField]]:
        for step in self.steps:
            for field in step.fields:
                yield step, field

    def get_step(self, step_id: str) -> FlowStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Step '{step_id}' not found")

    def to_document(self) -> Dict[str, Any]:
        """JSON-compatible document, as stored in ``flow_versions.payload``."""
        return _document(self)
