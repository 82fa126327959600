"""Data models for the music video pipeline."""

from .bible import (
    ERROR_SENTINEL,
    AssetStatus,
    BibleKind,
    Bibles,
    CharacterBible,
    LocationBible,
)
from .brief import CreativeBrief
from .project import PostProductionStatus, ProjectState, Stage, TaskStatus, TokenUsage
from .review import ContinuityIssue, ReviewState, ReviewStatus, VisualContinuityReport
from .song import ModelTier, SingerGender, SongAnalysis, SongFile
from .storyboard import (
    VFX_PRESETS,
    ExecutiveFeedback,
    PostProductionTask,
    Scene,
    Shot,
    Storyboard,
    Transition,
    VideoModel,
)

__all__ = [
    "ERROR_SENTINEL",
    "AssetStatus",
    "BibleKind",
    "Bibles",
    "CharacterBible",
    "LocationBible",
    "CreativeBrief",
    "PostProductionStatus",
    "ProjectState",
    "Stage",
    "TaskStatus",
    "TokenUsage",
    "ContinuityIssue",
    "ReviewState",
    "ReviewStatus",
    "VisualContinuityReport",
    "ModelTier",
    "SingerGender",
    "SongAnalysis",
    "SongFile",
    "VFX_PRESETS",
    "ExecutiveFeedback",
    "PostProductionTask",
    "Scene",
    "Shot",
    "Storyboard",
    "Transition",
    "VideoModel",
]
