# apps/leadflows/engine/renderers.py
"""
Rendu des steps: un renderer par type de step, table fermée.

Le runtime ne fabrique pas de HTML; il produit un ``RenderedStep`` (template +
contexte JSON) que la couche UI affiche, puis rappelle ``on_complete(data)``
quand l'utilisateur termine la step.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from django.core.exceptions import ImproperlyConfigured

from ..conf import get_settings
from ..constants import STEP_TYPES
from ..schema.payload import FlowStep, StyleConfig
from .logic import LogicOutcome


@dataclass(frozen=True)
class StepRenderContext:
    step: FlowStep
    values: Mapping[str, Any]
    on_complete: Callable[[Dict[str, Any]], Any]
    on_back: Optional[Callable[[], Any]]
    style_config: StyleConfig
    outcome: LogicOutcome = field(default_factory=LogicOutcome)


@dataclass(frozen=True)
class RenderedStep:
    step_id: str
    step_type: str
    template: str
    context: Dict[str, Any]
    on_complete: Callable[[Dict[str, Any]], Any]
    on_back: Optional[Callable[[], Any]] = None

    @property
    def can_go_back(self) -> bool:
        return self.on_back is not None


class StepRenderer:
    step_type: str = ""

    @property
    def template_name(self) -> str:
        return f"leadflows/steps/{self.step_type}.html"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        step = ctx.step
        data = step.to_document()
        data.pop("fields", None)
        return {
            "step": data,
            "fields": self.get_fields(ctx),
            "style": ctx.style_config.to_document(),
            "button_text": step.button_text,
        }

    def get_fields(self, ctx: StepRenderContext) -> list:
        out = []
        for fld in ctx.step.fields:
            if ctx.outcome.is_field_hidden(fld.id):
                continue
            data = fld.to_document()
            data.pop("conditional_logic", None)
            data["value"] = ctx.values.get(fld.field_name, fld.default_value)
            data["disabled"] = ctx.outcome.is_field_disabled(fld.id)
            out.append(data)
        return out

    def render(self, ctx: StepRenderContext) -> RenderedStep:
        return RenderedStep(
            step_id=ctx.step.id,
            step_type=ctx.step.step_type,
            template=self.template_name,
            context=self.get_context(ctx),
            on_complete=ctx.on_complete,
            on_back=ctx.on_back,
        )


class FormRenderer(StepRenderer):
    step_type = "form"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["layout"] = ctx.step.settings.get("layout", "single")
        return data


class QuizRenderer(FormRenderer):
    step_type = "quiz"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["show_results"] = bool(ctx.step.settings.get("showResults", False))
        data["passing_score"] = ctx.step.settings.get("passingScore")
        return data


class SurveyRenderer(FormRenderer):
    step_type = "survey"


class FileUploadRenderer(FormRenderer):
    step_type = "file_upload"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["max_files"] = ctx.step.settings.get("maxFiles")
        data["accept"] = ctx.step.settings.get("accept")
        return data


class ContentRenderer(StepRenderer):
    step_type = "content"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["content"] = ctx.step.content or ""
        return data


class ConditionalRenderer(StepRenderer):
    step_type = "conditional"


class ThankYouRenderer(StepRenderer):
    step_type = "thank_you"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        settings = ctx.step.settings
        data["content"] = ctx.step.content or ""
        data["show_confetti"] = bool(settings.get("showConfetti", True))
        data["redirect_url"] = ctx.step.redirect_url
        data["redirect_delay"] = ctx.step.redirect_delay or settings.get("redirectDelay")
        return data


class LandingRenderer(StepRenderer):
    step_type = "single_page_landing"

    def __init__(self, map_token: str = "") -> None:
        self.map_token = map_token

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        settings = ctx.step.settings
        data["layout_type"] = settings.get("layoutType", "hero")
        data["show_benefits"] = bool(settings.get("showBenefits", True))
        data["show_progress_steps"] = bool(settings.get("showProgressSteps", True))
        data["map_token"] = self.map_token
        return data


class ImageGalleryRenderer(StepRenderer):
    step_type = "image_gallery"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["images"] = list(ctx.step.settings.get("images") or [])
        return data


class VideoRenderer(StepRenderer):
    step_type = "video"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["video_url"] = ctx.step.settings.get("videoUrl", "")
        data["autoplay"] = bool(ctx.step.settings.get("autoplay", False))
        return data


class RatingRenderer(StepRenderer):
    step_type = "rating"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["max_rating"] = int(ctx.step.settings.get("maxRating", 5))
        return data


class TestimonialRenderer(StepRenderer):
    step_type = "testimonial"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["testimonials"] = list(ctx.step.settings.get("testimonials") or [])
        return data


class CountdownRenderer(StepRenderer):
    step_type = "countdown"

    def get_context(self, ctx: StepRenderContext) -> Dict[str, Any]:
        data = super().get_context(ctx)
        data["ends_at"] = ctx.step.settings.get("endsAt")
        data["duration_seconds"] = ctx.step.settings.get("durationSeconds")
        return data


def default_renderers() -> Dict[str, StepRenderer]:
    renderers = [
        FormRenderer(),
        ContentRenderer(),
        QuizRenderer(),
        SurveyRenderer(),
        ConditionalRenderer(),
        ThankYouRenderer(),
        LandingRenderer(map_token=get_settings().map_token),
        ImageGalleryRenderer(),
        VideoRenderer(),
        FileUploadRenderer(),
        RatingRenderer(),
        TestimonialRenderer(),
        CountdownRenderer(),
    ]
    return {r.step_type: r for r in renderers}


def missing_renderers(renderers: Mapping[str, StepRenderer]) -> list:
    return [t for t in STEP_TYPES if t not in renderers]


def get_renderer(step_type: str, renderers: Mapping[str, StepRenderer]) -> StepRenderer:
    try:
        return renderers[step_type]
    except KeyError:
        raise ImproperlyConfigured(f"No renderer registered for step type '{step_type}'") from None
