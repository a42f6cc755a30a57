"""Error taxonomy of the lead flow engine."""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .schema.validator import FlowError


class LeadFlowError(Exception):
    """Base class for lead flow errors."""


class FlowValidationError(LeadFlowError):
    """Raised when a payload violates the flow schema; carries every violation."""

    def __init__(self, errors: Iterable["FlowError"]) -> None:
        self.errors: List["FlowError"] = list(errors)
        summary = "; ".join(f"{e.path or '<root>'}: {e.message}" for e in self.errors[:5])
        if len(self.errors) > 5:
            summary += f" (+{len(self.errors) - 5} more)"
        super().__init__(summary or "invalid flow payload")

    def as_list(self) -> List[dict]:
        return [e.as_dict() for e in self.errors]


class FlowNotFoundError(LeadFlowError):
    """Raised when a flow, a draft or a published version does not exist."""


class VersionConflictError(LeadFlowError):
    """Raised when two writers computed the same version number for a flow."""

    def __init__(self, flow_id: object, version: int) -> None:
        super().__init__(f"Version {version} of flow {flow_id} was written concurrently")
        self.flow_id = flow_id
        self.version = version


class FlowMigrationError(LeadFlowError):
    """Raised when legacy flow data is missing or malformed."""


class FlowCompletedError(LeadFlowError):
    """Raised when a finished flow runtime is asked to move forward."""


class StepResponseError(LeadFlowError):
    """Raised when the answers given for the current step are missing or invalid."""

    def __init__(self, step_id: str, errors: Mapping[str, List[str]]) -> None:
        self.step_id = step_id
        self.errors: Dict[str, List[str]] = {name: list(msgs) for name, msgs in errors.items()}
        summary = "; ".join(f"{name}: {msgs[0]}" for name, msgs in self.errors.items() if msgs)
        super().__init__(f"Step '{step_id}' has invalid answers ({summary})")

    def as_list(self) -> List[dict]:
        return [
            {"path": name, "message": message}
            for name, messages in self.errors.items()
            for message in messages
        ]
