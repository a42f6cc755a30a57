from __future__ import annotations

import copy
from typing import Any, Dict


def make_payload(**overrides: Any) -> Dict[str, Any]:
    """Flow valide à 3 steps: A (q1) -> B (email) -> merci; B masquée si q1 == 'no'."""
    doc: Dict[str, Any] = {
        "name": "Housing search",
        "slug": "housing-search",
        "steps": [
            {
                "id": "A",
                "step_order": 0,
                "step_type": "form",
                "title": "Do you rent?",
                "fields": [
                    {
                        "id": "f-q1",
                        "field_type": "radio",
                        "field_name": "q1",
                        "label": "Renting?",
                        "options": ["yes", "no"],
                    },
                ],
            },
            {
                "id": "B",
                "step_order": 1,
                "step_type": "form",
                "title": "Your email",
                "fields": [
                    {
                        "id": "f-email",
                        "field_type": "email",
                        "field_name": "email",
                        "is_required": True,
                    },
                    {
                        "id": "f-phone",
                        "field_type": "phone",
                        "field_name": "phone",
                    },
                ],
            },
            {
                "id": "C",
                "step_order": 2,
                "step_type": "thank_you",
                "title": "Thanks!",
            },
        ],
        "logic": [
            {
                "target": {"scope": "step", "id": "B"},
                "action": "hide",
                "conditions": [{"sourceId": "q1", "operator": "equals", "value": "no"}],
                "join": "AND",
            },
        ],
    }
    doc = copy.deepcopy(doc)
    doc.update(overrides)
    return doc
