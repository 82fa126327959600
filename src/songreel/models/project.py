"""Project state model."""

from numbers import Number
from typing import Any, Dict, Mapping, Optional
from enum import Enum
from pydantic import BaseModel, Field

from .bible import Bibles
from .brief import CreativeBrief
from .review import ReviewState
from .song import ModelTier, SingerGender, SongAnalysis, SongFile
from .storyboard import PostProductionTask, Storyboard


class Stage(str, Enum):
    """Where the project is in the production flow.

    `PLAN` is transient: it only exists while bibles and the storyboard are
    being generated.
    """
    UPLOAD = "upload"
    CONTROLS = "controls"
    PLAN = "plan"
    STORYBOARD = "storyboard"
    REVIEW = "review"


class TaskStatus(str, Enum):
    """Progress of a post-production pass."""
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"


class PostProductionStatus(BaseModel):
    vfx: TaskStatus = TaskStatus.IDLE
    color: TaskStatus = TaskStatus.IDLE
    stabilization: TaskStatus = TaskStatus.IDLE

    class Config:
        frozen = True

    def with_status(self, task: PostProductionTask, status: TaskStatus) -> "PostProductionStatus":
        return self.model_copy(update={PostProductionTask(task).value: TaskStatus(status)})


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def merge_usage(current: Mapping[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge a usage update into accumulated usage.

    Numbers add, mappings merge recursively, anything else overwrites.
    Keys whose update value is None are ignored.
    """
    merged = dict(current)
    for key, value in update.items():
        if value is None:
            continue
        existing = merged.get(key)
        if _is_number(existing) and _is_number(value):
            merged[key] = existing + value
        elif isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_usage(existing, value)
        else:
            merged[key] = value
    return merged


class TokenUsage(BaseModel):
    """Token (or cost unit) consumption per pipeline category."""

    analysis: int = 0
    bibles: int = 0
    storyboard: int = 0
    transitions: int = 0
    image_generation: int = 0
    image_editing: int = 0
    video_generation: int = 0
    post_production: int = 0
    moodboard_analysis: int = 0
    executive_review: int = 0
    visual_review: int = 0
    performance: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "allow"

    @property
    def total(self) -> int:
        return sum(value for value in self.model_dump().values() if _is_number(value))

    def merged(self, update: Mapping[str, Any]) -> "TokenUsage":
        """Return the usage with `update` accumulated into it."""
        return TokenUsage.model_validate(merge_usage(self.model_dump(), update))


class ProjectState(BaseModel):
    """Everything known about one music video project.

    The state is immutable; `songreel.state_machine.transition` derives the
    next state from the current one and an event.
    """

    stage: Stage = Field(default=Stage.UPLOAD, description="Current stage")
    song: Optional[SongFile] = Field(None, description="Uploaded audio")
    audio_url: Optional[str] = Field(None, description="Backend-hosted copy of the audio")
    singer_gender: SingerGender = Field(default=SingerGender.UNSPECIFIED)
    model_tier: ModelTier = Field(default=ModelTier.FREEMIUM)
    song_analysis: Optional[SongAnalysis] = None
    creative_brief: CreativeBrief = Field(default_factory=CreativeBrief)
    bibles: Optional[Bibles] = None
    storyboard: Optional[Storyboard] = None
    is_processing: bool = False
    api_error: Optional[str] = Field(None, description="Latest recoverable error message")
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    post_production: PostProductionStatus = Field(default_factory=PostProductionStatus)
    review: Optional[ReviewState] = None

    class Config:
        """Pydantic config."""
        frozen = True
