"""Storyboard models: scenes, shots and transitions."""

from typing import Iterator, List, Optional, Tuple
from enum import Enum
from pydantic import BaseModel, Field

from .bible import ERROR_SENTINEL, AssetStatus


class VideoModel(str, Enum):
    """Image-to-video model variants the render backend can run."""
    WAVER = "waver"
    STEP_VIDEO_TI2V = "step_video_ti2v"
    ANIMATEDIFF_V3 = "animatediff_v3"
    WAN2_2 = "wan2_2"
    VIDEOCRAFTER2 = "videocrafter2"


class RenderProfile(str, Enum):
    """Coarse look requested from the render backend."""
    REALISTIC = "realistic"
    STYLIZED = "stylized"
    PORTRAIT = "portrait"
    PLATE = "plate"


class PostProductionTask(str, Enum):
    """Post-production passes tracked per project."""
    VFX = "vfx"
    COLOR = "color"
    STABILIZATION = "stabilization"


# Effects offered for individual shots.
VFX_PRESETS = ("Slow Motion", "Speed Ramp", "Lens Flare", "Glitch Effect", "Vintage Film Grain")


class Transition(BaseModel):
    """Transition from one shot to the next."""

    type: str = Field(default="Hard Cut", description="Hard Cut, Crossfade, Match Cut, ...")
    duration: float = Field(default=0.0, description="Transition length in seconds", ge=0)
    description: str = Field(default="", description="Why this transition works")

    class Config:
        """Pydantic config."""
        frozen = True


class LyricOverlay(BaseModel):
    text: str = ""
    animation_style: str = "fade"

    class Config:
        frozen = True


class CinematicEnhancements(BaseModel):
    lighting_style: str = ""
    camera_lens: str = ""
    camera_motion: str = ""

    class Config:
        frozen = True


class DesignFeedback(BaseModel):
    """Design agent scoring of one shot."""

    sync_score: float = 0.0
    cohesion_score: float = 0.0
    placement: str = ""
    feedback: str = ""

    class Config:
        frozen = True


class PostProductionEnhancements(BaseModel):
    color_corrected: bool = False
    stabilized: bool = False

    class Config:
        frozen = True


class Shot(BaseModel):
    """A single shot of the storyboard.

    Three lifecycles live on the shot itself:

    - image: `preview_image_url` is None or "" while pending, a URL once ready
      and `ERROR_SENTINEL` after a failed generation.
    - clip job: `is_generating_clip` and `generation_progress` (0-100).
    - clip: `clip_url` once a clip exists.
    """

    id: str = Field(..., description="Shot identifier, unique across the storyboard")
    start: float = Field(default=0.0, description="Start time in seconds", ge=0)
    end: float = Field(default=0.0, description="End time in seconds", ge=0)
    shot_type: str = ""
    camera_move: str = ""
    composition: str = ""
    subject: str = ""
    action: str = ""
    location_ref: str = ""
    character_refs: List[str] = Field(default_factory=list)
    performer_refs: List[str] = Field(default_factory=list)
    lip_sync_hint: bool = False
    lyric_overlay: Optional[LyricOverlay] = None
    cinematic_enhancements: CinematicEnhancements = Field(default_factory=CinematicEnhancements)
    design_agent_feedback: Optional[DesignFeedback] = None
    vfx: Optional[str] = Field(None, description="One of VFX_PRESETS")
    video_model: Optional[str] = Field(None, description="Requested VideoModel value")
    render_profile: Optional[str] = None
    workflow_hint: Optional[str] = None
    preview_image_url: Optional[str] = None
    clip_url: Optional[str] = None
    is_generating_clip: bool = False
    generation_progress: float = Field(default=0.0, ge=0, le=100)
    post_production_enhancements: PostProductionEnhancements = Field(
        default_factory=PostProductionEnhancements
    )

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)

    @property
    def image_status(self) -> AssetStatus:
        if not self.preview_image_url:
            return AssetStatus.PENDING
        if self.preview_image_url == ERROR_SENTINEL:
            return AssetStatus.ERROR
        return AssetStatus.READY

    @property
    def has_ready_image(self) -> bool:
        return self.image_status == AssetStatus.READY


class Scene(BaseModel):
    """A section of the song with its shots.

    `transitions` is index-aligned with `shots`: entry i describes the cut
    from shot i to shot i+1. The last entry has no following shot and is
    normally None; it is kept as given.
    """

    id: str = Field(..., description="Scene identifier")
    section: str = Field(default="", description="Song section this scene covers")
    start: float = Field(default=0.0, ge=0)
    end: float = Field(default=0.0, ge=0)
    description: str = ""
    narrative_beats: List[str] = Field(default_factory=list)
    shots: List[Shot] = Field(default_factory=list)
    transitions: List[Optional[Transition]] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True


class ExecutiveFeedback(BaseModel):
    """Executive producer review of the whole storyboard."""

    pacing_score: float = Field(default=0.0, ge=0)
    narrative_score: float = Field(default=0.0, ge=0)
    consistency_score: float = Field(default=0.0, ge=0)
    final_notes: str = ""

    class Config:
        """Pydantic config."""
        frozen = True


class Storyboard(BaseModel):
    """The shot plan for the whole song."""

    id: str = Field(default="storyboard", description="Storyboard identifier")
    title: str = ""
    artist: str = ""
    scenes: List[Scene] = Field(default_factory=list)
    executive_producer_feedback: Optional[ExecutiveFeedback] = None

    class Config:
        """Pydantic config."""
        frozen = True

    def iter_shots(self) -> Iterator[Tuple[int, int, Shot]]:
        """Yield (scene_index, shot_index, shot) in storyboard order."""
        for scene_index, scene in enumerate(self.scenes):
            for shot_index, shot in enumerate(scene.shots):
                yield scene_index, shot_index, shot

    def find_shot(self, shot_id: str) -> Optional[Shot]:
        for _, _, shot in self.iter_shots():
            if shot.id == shot_id:
                return shot
        return None

    def replace_shot(self, shot: Shot) -> "Storyboard":
        """Return a copy with the shot of the same id replaced.

        Unknown ids leave the storyboard unchanged.
        """
        if self.find_shot(shot.id) is None:
            return self
        scenes = [
            scene.model_copy(update={
                "shots": [shot if existing.id == shot.id else existing for existing in scene.shots]
            })
            if any(existing.id == shot.id for existing in scene.shots) else scene
            for scene in self.scenes
        ]
        return self.model_copy(update={"scenes": scenes})

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None
