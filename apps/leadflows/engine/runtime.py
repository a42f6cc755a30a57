# apps/leadflows/engine/runtime.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..exceptions import FlowCompletedError, StepResponseError
from ..schema.payload import FlowPayload, FlowStep
from .logic import LogicOutcome, evaluate
from .renderers import RenderedStep, StepRenderContext, StepRenderer, default_renderers, get_renderer
from .responses import step_errors

CompletionCallback = Callable[[Dict[str, Any]], Any]


class FlowRuntime:
    """
    Stepper d'un flow publié: index courant, réponses cumulées, résultat de la
    logique. Le payload n'est jamais modifié; seules les réponses et l'index bougent.
    """

    def __init__(
        self,
        payload: FlowPayload,
        renderers: Optional[Mapping[str, StepRenderer]] = None,
        on_complete: Union[CompletionCallback, Iterable[CompletionCallback], None] = None,
    ) -> None:
        self.payload = payload
        self.steps: List[FlowStep] = payload.ordered_steps()
        self.renderers: Dict[str, StepRenderer] = dict(renderers) if renderers is not None else default_renderers()
        if on_complete is None:
            self._callbacks: List[CompletionCallback] = []
        elif callable(on_complete):
            self._callbacks = [on_complete]
        else:
            self._callbacks = list(on_complete)

        self.responses: Dict[str, Any] = {}
        self.completed = False
        self.outcome: LogicOutcome = evaluate(payload.logic, self.responses)
        first = self._next_visible_index(-1)
        self.current_step_index = first if first is not None else 0

    # ---------- visibilité ----------
    def _is_visible(self, step: FlowStep) -> bool:
        return not self.outcome.is_step_hidden(step.id)

    @property
    def visible_steps(self) -> List[FlowStep]:
        return [s for s in self.steps if self._is_visible(s)]

    def _next_visible_index(self, after: int) -> Optional[int]:
        for idx in range(after + 1, len(self.steps)):
            if self._is_visible(self.steps[idx]):
                return idx
        return None

    def _prev_visible_index(self, before: int) -> Optional[int]:
        for idx in range(before - 1, -1, -1):
            if self._is_visible(self.steps[idx]):
                return idx
        return None

    @property
    def current_step(self) -> Optional[FlowStep]:
        if self.completed or not self.steps:
            return None
        step = self.steps[self.current_step_index]
        # step masquée: aucune step visible au départ
        return step if self._is_visible(step) else None

    @property
    def can_go_back(self) -> bool:
        if self.completed or not self.payload.settings.allows_back:
            return False
        return self._prev_visible_index(self.current_step_index) is not None

    # ---------- navigation ----------
    def on_complete(self, callback: CompletionCallback) -> None:
        self._callbacks.append(callback)

    def advance(self, step_responses: Optional[Mapping[str, Any]] = None) -> Optional[FlowStep]:
        """
        Check and merge the current step's answers, then move to the next visible
        step; returns it, or None once complete. Invalid answers raise
        ``StepResponseError`` and leave the runtime on the same step.
        """
        if self.completed:
            raise FlowCompletedError(f"Flow '{self.payload.slug}' is already complete")

        merged = dict(self.responses)
        if step_responses:
            merged.update(step_responses)
        outcome = evaluate(self.payload.logic, merged)

        step = self.current_step
        if step is not None:
            errors = step_errors(step, merged, outcome)
            if errors:
                raise StepResponseError(step.id, errors)

        self.responses = merged
        self.outcome = outcome

        nxt = self._next_visible_index(self.current_step_index) if self.steps else None
        if nxt is None:
            self._complete()
            return None
        self.current_step_index = nxt
        return self.steps[nxt]

    def retreat(self) -> Optional[FlowStep]:
        if not self.can_go_back:
            return self.current_step
        prev = self._prev_visible_index(self.current_step_index)
        self.current_step_index = prev
        return self.steps[prev]

    def _complete(self) -> None:
        self.completed = True
        for callback in self._callbacks:
            callback(dict(self.responses))

    def progress(self) -> float:
        visible = self.visible_steps
        if self.completed or not visible:
            return 1.0
        # étapes visibles jusqu'à la step courante incluse
        position = sum(1 for s in self.steps[: self.current_step_index + 1] if self._is_visible(s))
        return min(1.0, max(0.0, position / len(visible)))

    # ---------- état des champs ----------
    def field_state(self, field_id: str) -> Dict[str, bool]:
        return {
            "visible": not self.outcome.is_field_hidden(field_id),
            "enabled": not self.outcome.is_field_disabled(field_id),
        }

    # ---------- rendu ----------
    def render_current(self) -> Optional[RenderedStep]:
        step = self.current_step
        if step is None:
            return None
        renderer = get_renderer(step.step_type, self.renderers)
        ctx = StepRenderContext(
            step=step,
            values=dict(self.responses),
            on_complete=self.advance,
            on_back=self.retreat if self.can_go_back else None,
            style_config=self.payload.style_config,
            outcome=self.outcome,
        )
        return renderer.render(ctx)

    # ---------- snapshot ----------
    def snapshot(self) -> Dict[str, Any]:
        current = self.current_step
        return {
            "step_id": current.id if current else None,
            "responses": dict(self.responses),
            "completed": self.completed,
        }

    @classmethod
    def restore(
        cls,
        payload: FlowPayload,
        state: Optional[Mapping[str, Any]],
        renderers: Optional[Mapping[str, StepRenderer]] = None,
    ) -> "FlowRuntime":
        """Rebuild a runtime from ``snapshot()``; an unknown step id falls back to the first visible step."""
        runtime = cls(payload, renderers=renderers)
        if not state:
            return runtime
        runtime.responses = dict(state.get("responses") or {})
        runtime.outcome = evaluate(payload.logic, runtime.responses)
        runtime.completed = bool(state.get("completed"))
        step_id = state.get("step_id")
        for idx, step in enumerate(runtime.steps):
            if step.id == step_id:
                runtime.current_step_index = idx
                break
        else:
            first = runtime._next_visible_index(-1)
            runtime.current_step_index = first if first is not None else 0
        return runtime
