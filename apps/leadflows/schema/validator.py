# apps/leadflows/schema/validator.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError

from ..conf import get_settings
from ..exceptions import FlowValidationError
from .payload import FlowPayload, FlowStep, LogicRule
from .step_kinds import get_step_kind

M = TypeVar("M", FlowStep, LogicRule)


@dataclass(frozen=True)
class FlowError:
    path: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    payload: Optional[FlowPayload] = None
    errors: List[FlowError] = field(default_factory=list)


# ------------------------------------------------------------
# Erreurs pydantic -> FlowError
# ------------------------------------------------------------

_UNION_TAGS = {"int", "float", "str", "bool", "list", "dict", "none"}


def _is_union_tag(part: Any) -> bool:
    # pydantic ajoute le membre d'union au loc: ("min", "int"), ("x", "list[str]")
    return isinstance(part, str) and (part in _UNION_TAGS or "[" in part)


def _format_loc(loc: Iterable[Any]) -> str:
    return ".".join(str(p) for p in loc if not _is_union_tag(p))


def _clean_message(msg: str) -> str:
    for prefix in ("Value error, ", "Assertion failed, "):
        if msg.startswith(prefix):
            return msg[len(prefix):]
    return msg


def _structural_errors(exc: ValidationError) -> List[FlowError]:
    out: List[FlowError] = []
    seen = set()
    for err in exc.errors():
        path = _format_loc(err.get("loc", ()))
        if path in seen:
            # une seule erreur par chemin (branches d'union)
            continue
        seen.add(path)
        out.append(FlowError(path, _clean_message(err.get("msg", "invalid value"))))
    return out


# ------------------------------------------------------------
# Cross-checks
# ------------------------------------------------------------
# Les checks travaillent sur des paires (index, élément) pour garder les
# chemins du document d'origine quand certaines steps n'ont pas pu être lues.

IndexedSteps = List[Tuple[int, FlowStep]]
IndexedRules = List[Tuple[int, LogicRule]]


def _check_identifiers(steps: IndexedSteps) -> List[FlowError]:
    errors: List[FlowError] = []
    step_ids: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for i, step in steps:
        if step.id in step_ids:
            errors.append(FlowError(f"steps.{i}.id", f"Duplicate step id '{step.id}'"))
        else:
            step_ids[step.id] = i
        field_ids = set()
        for j, fld in enumerate(step.fields):
            if fld.id in field_ids:
                errors.append(FlowError(
                    f"steps.{i}.fields.{j}.id",
                    f"Duplicate field id '{fld.id}' in step '{step.id}'",
                ))
            field_ids.add(fld.id)
            owner = names.get(fld.field_name)
            if owner is not None:
                errors.append(FlowError(
                    f"steps.{i}.fields.{j}.field_name",
                    f"Duplicate field_name '{fld.field_name}' (already used in step '{owner}')",
                ))
            else:
                names[fld.field_name] = step.id
    return errors


def _check_step_order(steps: IndexedSteps, complete: bool) -> List[FlowError]:
    errors: List[FlowError] = []
    seen: Dict[int, int] = {}
    for i, step in steps:
        if step.step_order in seen:
            errors.append(FlowError(f"steps.{i}.step_order", f"Duplicate step_order {step.step_order}"))
        seen.setdefault(step.step_order, i)
    # contiguïté: seulement si toutes les steps ont été lues
    if complete and not errors and sorted(seen) != list(range(len(steps))):
        errors.append(FlowError(
            "steps",
            f"step_order must be contiguous from 0 to {len(steps) - 1}, got {sorted(seen)}",
        ))
    return errors


def _check_step_kinds(steps: IndexedSteps) -> List[FlowError]:
    errors: List[FlowError] = []
    for i, step in steps:
        for sub, message in get_step_kind(step.step_type).check(step):
            errors.append(FlowError(f"steps.{i}.{sub}", message))
    return errors


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def _check_rule(
    i: int,
    rule: LogicRule,
    steps_by_id: Dict[str, FlowStep],
    field_owner: Dict[str, FlowStep],
    name_owner: Dict[str, FlowStep],
    enforce_order: bool,
    complete: bool,
) -> List[FlowError]:
    errors: List[FlowError] = []
    base = f"logic.{i}"
    target = rule.target

    affected: Optional[FlowStep] = None
    if target.scope == "step":
        affected = steps_by_id.get(target.id)
        if affected is None and complete:
            errors.append(FlowError(f"{base}.target.id", f"Unknown step '{target.id}'"))
        if rule.action in ("enable", "disable"):
            errors.append(FlowError(f"{base}.action", f"'{rule.action}' can only target fields"))
    else:
        affected = field_owner.get(target.id)
        if affected is None and complete:
            errors.append(FlowError(f"{base}.target.id", f"Unknown field '{target.id}'"))

    for j, cond in enumerate(rule.conditions):
        cpath = f"{base}.conditions.{j}"
        source = name_owner.get(cond.source_id)
        if source is None:
            if complete:
                errors.append(FlowError(f"{cpath}.sourceId", f"Unknown source field '{cond.source_id}'"))
        elif enforce_order and affected is not None and source.step_order >= affected.step_order:
            errors.append(FlowError(
                f"{cpath}.sourceId",
                f"Source field '{cond.source_id}' must be collected before step '{affected.id}'",
            ))
        if cond.operator == "in" and not isinstance(cond.value, (list, str)):
            errors.append(FlowError(f"{cpath}.value", "'in' needs a list or a comma-delimited string"))
        if cond.operator in ("gt", "lt") and not _is_number(cond.value):
            errors.append(FlowError(f"{cpath}.value", f"'{cond.operator}' needs a numeric value"))
    return errors


def _check_logic(steps: IndexedSteps, rules: IndexedRules, complete: bool) -> List[FlowError]:
    steps_by_id: Dict[str, FlowStep] = {}
    field_owner: Dict[str, FlowStep] = {}
    name_owner: Dict[str, FlowStep] = {}
    for _, step in steps:
        steps_by_id.setdefault(step.id, step)
        for fld in step.fields:
            field_owner.setdefault(fld.id, step)
            name_owner.setdefault(fld.field_name, step)

    enforce = get_settings().enforce_logic_ordering
    errors: List[FlowError] = []
    for i, rule in rules:
        errors.extend(_check_rule(i, rule, steps_by_id, field_owner, name_owner, enforce, complete))
    return errors


def _run_checks(steps: IndexedSteps, rules: IndexedRules, complete: bool = True) -> List[FlowError]:
    """``complete=False``: some steps failed to parse, existence checks would be false positives."""
    errors: List[FlowError] = []
    errors.extend(_check_identifiers(steps))
    errors.extend(_check_step_order(steps, complete))
    errors.extend(_check_step_kinds(steps))
    errors.extend(_check_logic(steps, rules, complete))
    return errors


def cross_check(payload: FlowPayload) -> List[FlowError]:
    return _run_checks(list(enumerate(payload.steps)), list(enumerate(payload.logic)))


def _parse_items(raw: Any, model: Type[M]) -> Tuple[List[Tuple[int, M]], bool]:
    """Parse each list item on its own; returns the items that parsed and whether all did."""
    if raw is None:
        return [], True
    if not isinstance(raw, list):
        return [], False
    parsed: List[Tuple[int, M]] = []
    complete = True
    for i, item in enumerate(raw):
        try:
            parsed.append((i, model.model_validate(item)))
        except ValidationError:
            # déjà remonté par la passe structurelle
            complete = False
    return parsed, complete


def _partial_cross_check(candidate: Any) -> List[FlowError]:
    """Cross-checks on the steps and rules that parse when the whole document does not."""
    if not isinstance(candidate, dict):
        return []
    steps, steps_ok = _parse_items(candidate.get("steps"), FlowStep)
    rules, _ = _parse_items(candidate.get("logic"), LogicRule)
    return _run_checks(steps, rules, complete=steps_ok)


def _dedupe(errors: Iterable[FlowError]) -> List[FlowError]:
    seen = set()
    out: List[FlowError] = []
    for err in errors:
        key = (err.path, err.message)
        if key not in seen:
            seen.add(key)
            out.append(err)
    return out


# ------------------------------------------------------------
# API publique
# ------------------------------------------------------------


def validate(candidate: Any) -> ValidationResult:
    """
    Valide un document de flow (dict JSON ou FlowPayload) sans jamais lever.
    Toutes les violations sont remontées en une passe, avec des chemins pointés
    (``steps.1.fields.0.field_name``): un slug invalide n'empêche pas de
    signaler un field_name en double.
    """
    if isinstance(candidate, FlowPayload):
        payload = candidate
    else:
        try:
            payload = FlowPayload.model_validate(candidate)
        except ValidationError as exc:
            errors = _structural_errors(exc) + _partial_cross_check(candidate)
            return ValidationResult(ok=False, errors=_dedupe(errors))

    errors = cross_check(payload)
    if errors:
        return ValidationResult(ok=False, errors=errors)
    return ValidationResult(ok=True, payload=payload)


def validate_or_raise(candidate: Any) -> FlowPayload:
    result = validate(candidate)
    if not result.ok:
        raise FlowValidationError(result.errors)
    return result.payload


def normalize_step_order(steps: Iterable[FlowStep]) -> List[FlowStep]:
    """Renumérote 0..N-1; tri stable, l'ordre de la liste départage les ex aequo."""
    ordered = sorted(steps, key=lambda s: s.step_order)
    return [
        s if s.step_order == idx else s.model_copy(update={"step_order": idx})
        for idx, s in enumerate(ordered)
    ]
