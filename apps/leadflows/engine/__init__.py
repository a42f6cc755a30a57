from .logic import LogicOutcome, evaluate
from .renderers import RenderedStep, StepRenderContext, StepRenderer, default_renderers
from .runtime import FlowRuntime

__all__ = [
    "FlowRuntime",
    "LogicOutcome",
    "RenderedStep",
    "StepRenderContext",
    "StepRenderer",
    "default_renderers",
    "evaluate",
]
