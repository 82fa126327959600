"""Interfaces of the generation collaborators.

The pipeline only depends on these protocols. Concrete clients live next to
this module (`anthropic`, `imagen`, `render_backend`) and in
`songreel.agents`; tests substitute fakes.
"""

from typing import Any, Dict, Generic, List, NamedTuple, Optional, Protocol, TypeVar, runtime_checkable

from ..models import (
    Bibles,
    CharacterBible,
    CreativeBrief,
    ExecutiveFeedback,
    LocationBible,
    ModelTier,
    Scene,
    Shot,
    SingerGender,
    SongAnalysis,
    SongFile,
    Storyboard,
    Transition,
    VisualContinuityReport,
)

T = TypeVar("T")


class Generated(NamedTuple, Generic[T]):
    """A generated value and what producing it cost."""

    value: T
    usage: int = 0


@runtime_checkable
class SongAnalyzer(Protocol):
    def analyze_song(
        self,
        song: SongFile,
        lyrics: str,
        title: str,
        artist: str,
        tier: ModelTier,
    ) -> Generated[SongAnalysis]:
        ...


@runtime_checkable
class CreativeGenerator(Protocol):
    """Text-model generators for the planning steps."""

    def generate_bibles(
        self,
        analysis: SongAnalysis,
        brief: CreativeBrief,
        singer_gender: SingerGender,
        tier: ModelTier,
    ) -> Generated[Bibles]:
        ...

    def generate_storyboard(
        self, analysis: SongAnalysis, brief: CreativeBrief, bibles: Bibles, tier: ModelTier
    ) -> Generated[Storyboard]:
        ...

    def generate_transitions(
        self, scene: Scene, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[List[Optional[Transition]]]:
        """Return one entry per shot; the last one is always None."""
        ...

    def suggest_brief(
        self, analysis: SongAnalysis, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[Dict[str, Any]]:
        """Return brief fields (feel, style, user_notes) to merge."""
        ...

    def analyze_moodboard(self, images: List[str], tier: ModelTier) -> Generated[Dict[str, Any]]:
        """Return brief fields read off reference images."""
        ...

    def suggest_vfx(
        self, analysis: SongAnalysis, storyboard: Storyboard, tier: ModelTier
    ) -> Generated[Dict[str, str]]:
        """Return a VFX preset per shot id."""
        ...


@runtime_checkable
class Reviewer(Protocol):
    """Whole-project reviews run when entering the review stage."""

    def executive_review(
        self, storyboard: Storyboard, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[ExecutiveFeedback]:
        ...

    def visual_review(
        self, storyboard: Storyboard, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[VisualContinuityReport]:
        ...


@runtime_checkable
class ImageGenerator(Protocol):
    """Still image generation; every method returns an image URL."""

    def generate_character_image(
        self, character: CharacterBible, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        ...

    def generate_location_image(
        self, location: LocationBible, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        ...

    def generate_shot_image(
        self, shot: Shot, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        ...

    def edit_shot_image(
        self, image_url: str, instruction: str, tier: ModelTier
    ) -> Generated[str]:
        ...
