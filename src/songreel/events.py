"""Events accepted by the project state machine.

Every change to a `ProjectState` is described by one of these immutable
records and applied by `songreel.state_machine.transition`.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from .models import (
    BibleKind,
    Bibles,
    ExecutiveFeedback,
    ModelTier,
    PostProductionTask,
    ProjectState,
    Shot,
    SingerGender,
    SongAnalysis,
    SongFile,
    Stage,
    Storyboard,
    TaskStatus,
    Transition,
    VisualContinuityReport,
)


@dataclass(frozen=True)
class Event:
    """Base class for state machine events."""


# Processing and errors


@dataclass(frozen=True)
class StartProcessing(Event):
    pass


@dataclass(frozen=True)
class SetApiError(Event):
    """Surface a recoverable fault. Only the latest message is kept."""

    message: str


@dataclass(frozen=True)
class ClearApiError(Event):
    pass


# Song and settings


@dataclass(frozen=True)
class SetSong(Event):
    song: SongFile
    singer_gender: SingerGender = SingerGender.UNSPECIFIED
    model_tier: ModelTier = ModelTier.FREEMIUM


@dataclass(frozen=True)
class SetAudioUrl(Event):
    url: Optional[str]


@dataclass(frozen=True)
class SetSingerGender(Event):
    singer_gender: SingerGender


@dataclass(frozen=True)
class SetModelTier(Event):
    model_tier: ModelTier


@dataclass(frozen=True)
class SetAnalysis(Event):
    """Store the song analysis and move on to the controls stage."""

    analysis: SongAnalysis


@dataclass(frozen=True)
class UpdateCreativeBrief(Event):
    """Shallow merge into the creative brief."""

    changes: Mapping[str, Any]


# Planning


@dataclass(frozen=True)
class SetStage(Event):
    """Navigate to a stage whose prerequisites are met."""

    stage: Stage


@dataclass(frozen=True)
class PlanningStarted(Event):
    pass


@dataclass(frozen=True)
class SetBibles(Event):
    bibles: Bibles


@dataclass(frozen=True)
class SetStoryboard(Event):
    storyboard: Storyboard


@dataclass(frozen=True)
class PlanningFailed(Event):
    """Bible or storyboard generation failed; fall back to controls."""

    message: str


@dataclass(frozen=True)
class SetBibleImages(Event):
    kind: BibleKind
    entry_id: str
    image_urls: Sequence[str]


@dataclass(frozen=True)
class SetSceneTransitions(Event):
    scene_id: str
    transitions: Sequence[Optional[Transition]]


# Shots


@dataclass(frozen=True)
class ReplaceShot(Event):
    shot: Shot


@dataclass(frozen=True)
class PatchShot(Event):
    shot_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ShotMediaUploaded(Event):
    """A user-supplied image or video replaced a shot's generated media."""

    shot_id: str
    media: str  # "image" or "video"
    url: str


@dataclass(frozen=True)
class ClipStarted(Event):
    shot_id: str


@dataclass(frozen=True)
class ClipProgress(Event):
    shot_id: str
    progress: float


@dataclass(frozen=True)
class ClipCompleted(Event):
    shot_id: str
    clip_url: str


@dataclass(frozen=True)
class ClipFailed(Event):
    shot_id: str


# Accounting and post-production


@dataclass(frozen=True)
class AddTokenUsage(Event):
    usage: Mapping[str, Any]


@dataclass(frozen=True)
class SetPostProductionStatus(Event):
    task: PostProductionTask
    status: TaskStatus


# Review


@dataclass(frozen=True)
class StartReview(Event):
    pass


@dataclass(frozen=True)
class SetExecutiveFeedback(Event):
    feedback: ExecutiveFeedback


@dataclass(frozen=True)
class StartVisualReview(Event):
    pass


@dataclass(frozen=True)
class SetVisualReport(Event):
    report: Optional[VisualContinuityReport]


# Whole state


@dataclass(frozen=True)
class ReplaceState(Event):
    """Swap in a whole new state (snapshot load or restart)."""

    state: ProjectState
