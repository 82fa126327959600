"""Per-model generation parameters for clip rendering."""

import math
from dataclasses import dataclass
from typing import Dict, Optional

from .models import VideoModel
from .models.storyboard import RenderProfile

DEFAULT_VIDEO_MODEL = VideoModel.WAVER
MIN_FPS = 8


@dataclass(frozen=True)
class ModelProfile:
    """Fixed capabilities and defaults of one video model."""

    default_fps: int
    max_frames: int
    negative_prompt: Optional[str] = None
    workflow: Optional[str] = None


MODEL_PROFILES: Dict[VideoModel, ModelProfile] = {
    VideoModel.WAVER: ModelProfile(
        default_fps=24,
        max_frames=96,
        negative_prompt=(
            "text, subtitles, watermark, logo, blurry, low quality, distorted face, "
            "extra limbs, duplicate faces"
        ),
        workflow="realistic",
    ),
    VideoModel.STEP_VIDEO_TI2V: ModelProfile(
        default_fps=24,
        max_frames=96,
        negative_prompt=(
            "text, subtitles, watermark, logo, blurry, low quality, face distortion, "
            "extra limbs, duplicate faces"
        ),
        workflow="portrait",
    ),
    VideoModel.ANIMATEDIFF_V3: ModelProfile(
        default_fps=16,
        max_frames=32,
        negative_prompt=(
            "text, subtitles, watermark, logo, flicker, warped limbs, bad hands, "
            "bad feet, multiple faces, face melting"
        ),
        workflow="animatediff",
    ),
    VideoModel.WAN2_2: ModelProfile(
        default_fps=16,
        max_frames=48,
        negative_prompt=(
            "text, watermark, logo, low detail eyes, off-model face, flicker, "
            "extra limbs, bad hands"
        ),
        workflow="stylized",
    ),
    VideoModel.VIDEOCRAFTER2: ModelProfile(
        default_fps=16,
        max_frames=48,
        negative_prompt=(
            "text, watermark, logo, muddy details, low contrast, overexposed, underexposed"
        ),
        workflow="plate",
    ),
}


# Models the backend knows but this table does not.
UNKNOWN_MODEL_PROFILE = ModelProfile(default_fps=16, max_frames=48)


@dataclass(frozen=True)
class GenerationParams:
    """Parameters sent with one clip request."""

    video_model: Optional[VideoModel]
    fps: int
    negative_prompt: Optional[str]
    workflow: Optional[str]


def resolve_video_model(value: Optional[str]) -> Optional[VideoModel]:
    """Map a requested model name to a known model.

    A missing name means waver; an unrecognized one gives None.
    """
    if not value:
        return DEFAULT_VIDEO_MODEL
    try:
        return VideoModel(value)
    except ValueError:
        return None


def derive_fps(profile: ModelProfile, duration: float) -> int:
    """Pick the highest frame rate that fits the model's frame budget.

    Never above the model's default rate, never below MIN_FPS. Durations
    under 0.1s are treated as 0.1s.
    """
    fitting = math.floor(profile.max_frames / max(0.1, duration))
    return max(MIN_FPS, min(profile.default_fps, fitting))


def derive_generation_params(
    video_model: Optional[str],
    duration: float,
    workflow_hint: Optional[str] = None,
    render_profile: Optional[str] = None,
) -> GenerationParams:
    """Derive clip parameters for a shot.

    Args:
        video_model: Requested model. Missing means waver; unknown names get
            the generic 16 fps, 48 frame budget and no negative prompt.
        duration: Shot duration in seconds.
        workflow_hint: Explicit workflow, wins over everything else.
        render_profile: Used only when no model was requested.

    Returns:
        GenerationParams for the render backend.
    """
    model = resolve_video_model(video_model)
    profile = MODEL_PROFILES[model] if model is not None else UNKNOWN_MODEL_PROFILE

    if workflow_hint:
        workflow = workflow_hint
    elif model is not None and model.value == video_model:
        workflow = profile.workflow
    elif render_profile in (RenderProfile.STYLIZED.value, RenderProfile.PORTRAIT.value, RenderProfile.PLATE.value):
        workflow = render_profile
    else:
        # The backend picks its own default workflow.
        workflow = None

    return GenerationParams(
        video_model=model,
        fps=derive_fps(profile, duration),
        negative_prompt=profile.negative_prompt,
        workflow=workflow,
    )


def map_camera_motion(camera_move: Optional[str], camera_motion: Optional[str] = None) -> str:
    """Reduce free-text camera directions to a motion preset.

    Returns one of zoom_in, zoom_out, pan_left, pan_right or static.
    """
    text = f"{camera_move or ''} {camera_motion or ''}".lower()
    if any(phrase in text for phrase in ("zoom in", "zooming in", "dolly in")):
        return "zoom_in"
    if any(phrase in text for phrase in ("zoom out", "zooming out", "dolly out", "pulling back")):
        return "zoom_out"
    if any(phrase in text for phrase in ("pan left", "panning left")):
        return "pan_left"
    if any(phrase in text for phrase in ("pan right", "panning right")):
        return "pan_right"
    return "static"
