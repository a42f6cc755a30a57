from __future__ import annotations

from django.conf import settings
from django.core.checks import Error, Warning, register

from .conf import unknown_keys
from .engine.renderers import default_renderers, missing_renderers


@register()
def check_leadflows_settings(app_configs, **kwargs):
    errors = []
    raw = getattr(settings, "LEADFLOWS", None)
    if raw is not None and not isinstance(raw, dict):
        errors.append(Error(
            "LEADFLOWS doit être un dict",
            hint="Ex: LEADFLOWS = {'ENFORCE_LOGIC_ORDERING': True}",
            id="leadflows.E001",
        ))
        return errors
    for key in sorted(unknown_keys()):
        errors.append(Warning(
            f"LEADFLOWS: clé inconnue '{key}'",
            hint="Clés reconnues: ENFORCE_LOGIC_ORDERING, CONFLICT_RETRIES, DEFAULT_BUTTON_TEXT, MAP_TOKEN, PUBLIC_CACHE_SECONDS.",
            id="leadflows.W001",
        ))
    retries = (raw or {}).get("CONFLICT_RETRIES", 0)
    if not isinstance(retries, int) or retries < 0:
        errors.append(Error(
            "LEADFLOWS['CONFLICT_RETRIES'] doit être un entier >= 0",
            id="leadflows.E002",
        ))
    return errors


@register()
def check_leadflows_renderers(app_configs, **kwargs):
    missing = missing_renderers(default_renderers())
    if not missing:
        return []
    return [Error(
        f"LEADFLOWS: aucun renderer pour {', '.join(missing)}",
        hint="Ajoute un StepRenderer par type de step dans engine/renderers.py.",
        id="leadflows.E003",
    )]
