# apps/leadflows/engine/responses.py
"""
Contrôle serveur des réponses d'une step avant d'avancer: ``is_required`` et
``validation_rules`` (pattern, minLength/maxLength, min/max) de chaque champ
visible et actif.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping

from django.core import validators
from django.core.exceptions import ValidationError

from ..schema.payload import FlowField, FlowStep
from .logic import LogicOutcome

REQUIRED_MESSAGE = "This field is required."
NUMBER_MESSAGE = "Enter a number."

# alimentés par le front (utm, gclid...), jamais saisis
_UNCHECKED_TYPES = {"hidden"}


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(NUMBER_MESSAGE, code="invalid")
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip())
    except ValueError:
        raise ValidationError(NUMBER_MESSAGE, code="invalid") from None


def _numeric(check: Callable[[Any], None]) -> Callable[[Any], None]:
    def _validator(value: Any) -> None:
        check(_to_number(value))
    return _validator


def _rule_checks(fld: FlowField) -> List[Callable[[Any], None]]:
    rules = fld.validation_rules
    if rules is None:
        return []
    message = rules.message
    checks: List[Callable[[Any], None]] = []
    if rules.pattern is not None:
        checks.append(validators.RegexValidator(rules.pattern, message=message))
    if rules.min_length is not None:
        checks.append(validators.MinLengthValidator(rules.min_length, message=message))
    if rules.max_length is not None:
        checks.append(validators.MaxLengthValidator(rules.max_length, message=message))
    if rules.min is not None:
        checks.append(_numeric(validators.MinValueValidator(rules.min, message=message)))
    if rules.max is not None:
        checks.append(_numeric(validators.MaxValueValidator(rules.max, message=message)))
    return checks


def field_errors(fld: FlowField, value: Any) -> List[str]:
    """Messages for one answer; an empty list means the answer is accepted."""
    rules = fld.validation_rules
    if is_blank(value):
        required = fld.is_required or bool(rules is not None and rules.required)
        return [REQUIRED_MESSAGE] if required else []

    checks: List[Callable[[Any], None]] = []
    if fld.field_type == "number":
        checks.append(_to_number)
    checks.extend(_rule_checks(fld))

    # longueurs comptées sur le texte saisi, ou sur le nombre de cases cochées
    subject = value if isinstance(value, (str, list, tuple)) else str(value)
    messages: List[str] = []
    for check in checks:
        try:
            check(subject)
        except ValidationError as exc:
            messages.extend(m for m in exc.messages if m not in messages)
    return messages


def step_errors(step: FlowStep, responses: Mapping[str, Any], outcome: LogicOutcome) -> Dict[str, List[str]]:
    """
    Erreurs par ``field_name`` pour la step courante. Les champs masqués ou
    désactivés par la logique sont ignorés. Une step facultative
    (``is_required=False``) laissée entièrement vide est acceptée.
    """
    checked = [
        fld for fld in step.fields
        if fld.field_type not in _UNCHECKED_TYPES
        and not outcome.is_field_hidden(fld.id)
        and not outcome.is_field_disabled(fld.id)
    ]
    if not step.is_required and all(is_blank(responses.get(f.field_name)) for f in checked):
        return {}

    errors: Dict[str, List[str]] = {}
    for fld in checked:
        messages = field_errors(fld, responses.get(fld.field_name))
        if messages:
            errors[fld.field_name] = messages
    return errors
