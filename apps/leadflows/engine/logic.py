# apps/leadflows/engine/logic.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..schema.payload import LogicCondition, LogicRule

# axes d'état: visibilité (show/hide) et activation (enable/disable)
_AXIS = {"show": "visible", "hide": "visible", "enable": "enabled", "disable": "enabled"}
_POSITIVE = {"show", "enable"}


@dataclass(frozen=True)
class LogicOutcome:
    visible_steps: FrozenSet[str] = frozenset()
    hidden_steps: FrozenSet[str] = frozenset()
    enabled_fields: FrozenSet[str] = frozenset()
    disabled_fields: FrozenSet[str] = frozenset()
    visible_fields: FrozenSet[str] = frozenset()
    hidden_fields: FrozenSet[str] = frozenset()

    def is_step_hidden(self, step_id: str) -> bool:
        return step_id in self.hidden_steps

    def is_field_hidden(self, field_id: str) -> bool:
        return field_id in self.hidden_fields

    def is_field_disabled(self, field_id: str) -> bool:
        return field_id in self.disabled_fields

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "visibleSteps": sorted(self.visible_steps),
            "hiddenSteps": sorted(self.hidden_steps),
            "enabledFields": sorted(self.enabled_fields),
            "disabledFields": sorted(self.disabled_fields),
            "visibleFields": sorted(self.visible_fields),
            "hiddenFields": sorted(self.hidden_fields),
        }


# ------------------------------------------------------------
# Conditions
# ------------------------------------------------------------

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _same(left: Any, right: Any) -> bool:
    # "3" == 3 quand les deux côtés sont numériques
    ln, rn = _as_number(left), _as_number(right)
    if ln is not None and rn is not None:
        return ln == rn
    return left == right


def _is_unanswered(value: Any) -> bool:
    return value is None or value == "" or value == []


def _members(expected: Any) -> List[Any]:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return list(expected)
    if isinstance(expected, str):
        return [part.strip() for part in expected.split(",")]
    return []


def condition_matches(cond: LogicCondition, responses: Mapping[str, Any]) -> bool:
    actual = responses.get(cond.source_id)
    if _is_unanswered(actual):
        return False
    op = cond.operator
    expected = cond.value

    if op == "equals":
        return _same(actual, expected)
    if op == "not_equals":
        return not _same(actual, expected)
    if op == "contains":
        if isinstance(actual, str):
            return expected is not None and str(expected) in actual
        if isinstance(actual, (list, tuple)):
            return any(_same(item, expected) for item in actual)
        return False
    if op in ("gt", "lt"):
        ln, rn = _as_number(actual), _as_number(expected)
        if ln is None or rn is None:
            return False
        return ln > rn if op == "gt" else ln < rn
    if op == "in":
        members = _members(expected)
        candidates = actual if isinstance(actual, (list, tuple)) else [actual]
        return any(_same(c, m) for c in candidates for m in members)
    # opérateur inconnu => False
    return False


def rule_fires(rule: LogicRule, responses: Mapping[str, Any]) -> bool:
    if not rule.conditions:
        return False
    results = (condition_matches(c, responses) for c in rule.conditions)
    if rule.join == "OR":
        return any(results)
    return all(results)


# ------------------------------------------------------------
# Évaluation
# ------------------------------------------------------------

def _coerce_rules(rules: Iterable[Any]) -> List[LogicRule]:
    return [r if isinstance(r, LogicRule) else LogicRule.model_validate(r) for r in rules]


def evaluate(rules: Iterable[Any], responses: Mapping[str, Any]) -> LogicOutcome:
    """
    Applique les règles dans l'ordre de déclaration; la dernière règle qui se
    déclenche l'emporte. Une cible dont la première règle est show/enable part
    masquée/désactivée ("afficher si"), toute autre cible part visible/active.
    """
    responses = responses or {}
    state: Dict[Tuple[str, str, str], bool] = {}
    for rule in _coerce_rules(rules):
        if rule.target.scope == "step" and _AXIS[rule.action] == "enabled":
            # enable/disable ne s'applique qu'aux champs
            continue
        key = (rule.target.scope, rule.target.id, _AXIS[rule.action])
        if key not in state:
            state[key] = rule.action not in _POSITIVE
        if rule_fires(rule, responses):
            state[key] = rule.action in _POSITIVE

    buckets: Dict[Tuple[str, str], Dict[bool, set]] = {
        ("step", "visible"): {True: set(), False: set()},
        ("field", "visible"): {True: set(), False: set()},
        ("field", "enabled"): {True: set(), False: set()},
    }
    for (scope, target_id, axis), on in state.items():
        buckets[(scope, axis)][on].add(target_id)

    return LogicOutcome(
        visible_steps=frozenset(buckets[("step", "visible")][True]),
        hidden_steps=frozenset(buckets[("step", "visible")][False]),
        visible_fields=frozenset(buckets[("field", "visible")][True]),
        hidden_fields=frozenset(buckets[("field", "visible")][False]),
        enabled_fields=frozenset(buckets[("field", "enabled")][True]),
        disabled_fields=frozenset(buckets[("field", "enabled")][False]),
    )
