"""Process-wide settings of the lead flow engine.

Everything the engine reads from configuration goes through ``get_settings()``:
the ``LEADFLOWS`` dict of the Django settings is read once, frozen, and cached
until ``reset_settings()`` is called (automatically on ``setting_changed``).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

_DEFAULTS: Mapping[str, Any] = {
    "ENFORCE_LOGIC_ORDERING": True,
    "CONFLICT_RETRIES": 3,
    "DEFAULT_BUTTON_TEXT": "Continue",
    "MAP_TOKEN": "",
    "PUBLIC_CACHE_SECONDS": 0,
}


@dataclass(frozen=True)
class LeadFlowsSettings:
    enforce_logic_ordering: bool
    conflict_retries: int
    default_button_text: str
    map_token: str
    public_cache_seconds: int


def _as_int(value: Any, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


@lru_cache(maxsize=1)
def get_settings() -> LeadFlowsSettings:
    raw = dict(_DEFAULTS)
    raw.update(getattr(settings, "LEADFLOWS", None) or {})
    return LeadFlowsSettings(
        enforce_logic_ordering=bool(raw["ENFORCE_LOGIC_ORDERING"]),
        conflict_retries=_as_int(raw["CONFLICT_RETRIES"], _DEFAULTS["CONFLICT_RETRIES"]),
        default_button_text=str(raw["DEFAULT_BUTTON_TEXT"] or _DEFAULTS["DEFAULT_BUTTON_TEXT"]),
        map_token=str(raw["MAP_TOKEN"] or ""),
        public_cache_seconds=_as_int(raw["PUBLIC_CACHE_SECONDS"], 0),
    )


def reset_settings() -> None:
    """Drop the cached settings; the next ``get_settings()`` re-reads Django settings."""
    get_settings.cache_clear()


@receiver(setting_changed)
def _reset_on_change(sender, setting: str, **kwargs) -> None:
    if setting == "LEADFLOWS":
        reset_settings()


def unknown_keys() -> set[str]:
    configured = getattr(settings, "LEADFLOWS", None) or {}
    return {str(k) for k in configured if k not in _DEFAULTS}
