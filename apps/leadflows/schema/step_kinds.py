# apps/leadflows/schema/step_kinds.py
"""Catalogue des types de step: settings reconnus, règles de complétude, step par défaut."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Type
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .payload import FlowStep


class _KindSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class FormSettings(_KindSettings):
    layout: Literal["single", "grid", "inline"] = "single"
    show_progress: bool = Field(True, alias="showProgress")
    allow_back: bool = Field(True, alias="allowBack")


class QuizSettings(_KindSettings):
    show_results: bool = Field(False, alias="showResults")
    passing_score: Optional[int] = Field(None, alias="passingScore", ge=0, le=100)
    allow_retake: bool = Field(True, alias="allowRetake")


class ThankYouSettings(_KindSettings):
    show_confetti: bool = Field(True, alias="showConfetti")
    auto_redirect: bool = Field(False, alias="autoRedirect")
    redirect_delay: Optional[int] = Field(None, alias="redirectDelay", gt=0)


class LandingSettings(_KindSettings):
    layout_type: Literal["hero", "split", "minimal"] = Field("hero", alias="layoutType")
    show_progress_steps: bool = Field(True, alias="showProgressSteps")
    show_benefits: bool = Field(True, alias="showBenefits")
    benefit_preset: Optional[str] = Field(None, alias="benefitPreset")


class VideoSettings(_KindSettings):
    video_url: str = Field(alias="videoUrl", min_length=1)
    autoplay: bool = False


# (path, message) relatif à la step
Problem = Tuple[str, str]


def _needs_fields(step: FlowStep) -> List[Problem]:
    if not step.fields:
        return [("fields", f"{step.step_type} step must have at least one field")]
    return []


def _needs_content(step: FlowStep) -> List[Problem]:
    if not (step.content or "").strip():
        return [("content", "Content step must have content")]
    return []


@dataclass(frozen=True)
class StepKind:
    step_type: str
    label: str
    settings_model: Optional[Type[_KindSettings]] = None
    rules: Tuple[Callable[[FlowStep], List[Problem]], ...] = ()
    default_title: str = ""
    default_content: Optional[str] = None
    default_settings: Dict[str, Any] = field(default_factory=dict)

    def check(self, step: FlowStep) -> List[Problem]:
        problems: List[Problem] = []
        if not step.title.strip():
            problems.append(("title", "Step title is required"))
        for rule in self.rules:
            problems.extend(rule(step))
        if self.settings_model is not None:
            try:
                self.settings_model.model_validate(step.settings)
            except ValidationError as exc:
                for err in exc.errors():
                    loc = ".".join(str(p) for p in err["loc"])
                    problems.append((f"settings.{loc}" if loc else "settings", err["msg"]))
        return problems


STEP_KINDS: Dict[str, StepKind] = {
    "form": StepKind(
        "form", "Form", FormSettings, (_needs_fields,),
        default_title="Tell us about yourself",
        default_settings={"layout": "single", "showProgress": True, "allowBack": True},
    ),
    "content": StepKind("content", "Content", None, (_needs_content,), default_title="Information", default_content="Add your content here."),
    "quiz": StepKind(
        "quiz", "Quiz", QuizSettings, (_needs_fields,),
        default_title="Quick quiz",
        default_settings={"showResults": False, "allowRetake": True},
    ),
    "survey": StepKind("survey", "Survey", default_title="Survey"),
    "conditional": StepKind("conditional", "Conditional", default_title="Conditional"),
    "thank_you": StepKind(
        "thank_you", "Thank you", ThankYouSettings,
        default_title="Thank you!",
        default_content="We received your information.",
        default_settings={"showConfetti": True, "autoRedirect": False},
    ),
    "single_page_landing": StepKind(
        "single_page_landing", "Single page landing", LandingSettings,
        default_title="Find housing assistance near you",
        default_settings={"layoutType": "hero", "showProgressSteps": True, "showBenefits": True},
    ),
    "image_gallery": StepKind("image_gallery", "Image gallery", default_title="Gallery"),
    "video": StepKind("video", "Video", VideoSettings, default_title="Watch this video", default_settings={"videoUrl": ""}),
    "file_upload": StepKind("file_upload", "File upload", default_title="Upload your documents"),
    "rating": StepKind("rating", "Rating", default_title="Rate your experience"),
    "testimonial": StepKind("testimonial", "Testimonial", default_title="What people say"),
    "countdown": StepKind("countdown", "Countdown", default_title="Offer ends soon"),
}


def get_step_kind(step_type: str) -> StepKind:
    try:
        return STEP_KINDS[step_type]
    except KeyError:
        raise KeyError(f"Unknown step type '{step_type}'") from None


def create_default_step(step_type: str, step_order: int = 0) -> FlowStep:
    """New step pre-filled for the editor. Not necessarily valid (a form still needs fields)."""
    kind = get_step_kind(step_type)
    return FlowStep(
        id=str(uuid4()),
        step_order=step_order,
        step_type=step_type,
        title=kind.default_title,
        content=kind.default_content,
        settings=dict(kind.default_settings),
    )
