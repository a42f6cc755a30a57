from .payload import (
    DEFAULT_STYLE_CONFIG,
    FieldOption,
    FlowField,
    FlowPayload,
    FlowSettings,
    FlowStep,
    GoogleAdsConfig,
    LogicCondition,
    LogicRule,
    LogicTarget,
    StyleConfig,
    ValidationRules,
)
from .step_kinds import STEP_KINDS, create_default_step, get_step_kind
from .validator import FlowError, ValidationResult, normalize_step_order, validate, validate_or_raise

__all__ = [
    "DEFAULT_STYLE_CONFIG",
    "FieldOption",
    "FlowError",
    "FlowField",
    "FlowPayload",
    "FlowSettings",
    "FlowStep",
    "GoogleAdsConfig",
    "LogicCondition",
    "LogicRule",
    "LogicTarget",
    "STEP_KINDS",
    "StyleConfig",
    "ValidationResult",
    "ValidationRules",
    "create_default_step",
    "get_step_kind",
    "normalize_step_order",
    "validate",
    "validate_or_raise",
]
