import pytest

from songreel.generation_params import (
    MODEL_PROFILES,
    derive_generation_params,
    map_camera_motion,
    resolve_video_model,
)
from songreel.models import VideoModel
from songreel.poller import ClipRequest


@pytest.mark.parametrize(
    "model, duration, fps",
    [
        ("wan2_2", 2.0, 16),
        ("wan2_2", 8.0, 8),
        ("waver", 4.0, 24),
        ("waver", 8.0, 12),
        ("animatediff_v3", 2.0, 16),
        ("animatediff_v3", 6.0, 8),
    ],
)
def test_fps_fits_frame_budget(model, duration, fps):
    assert derive_generation_params(model, duration).fps == fps


def test_tiny_durations_are_clamped():
    assert derive_generation_params("waver", 0.0).fps == 24


def test_missing_model_means_waver():
    params = derive_generation_params(None, 4.0)

    assert params.video_model == VideoModel.WAVER
    assert params.fps == 24
    assert params.negative_prompt == MODEL_PROFILES[VideoModel.WAVER].negative_prompt


@pytest.mark.parametrize("duration, fps", [(2.0, 16), (4.0, 12), (8.0, 8)])
def test_unknown_model_uses_generic_budget(duration, fps):
    params = derive_generation_params("sora-9000", duration)

    assert resolve_video_model("sora-9000") is None
    assert params.video_model is None
    assert params.fps == fps
    assert params.negative_prompt is None
    assert params.workflow is None


def test_unknown_model_sends_no_negative_prompt():
    request = ClipRequest(
        shot_id="s1", image_url="https://img", prompt="p", duration=4.0,
        negative_prompt=derive_generation_params("sora-9000", 4.0).negative_prompt,
    )

    assert "negative_prompt" not in request.to_payload()


def test_workflow_resolution_order():
    assert derive_generation_params("wan2_2", 4.0, workflow_hint="custom").workflow == "custom"
    assert derive_generation_params("wan2_2", 4.0).workflow == "stylized"
    assert derive_generation_params(None, 4.0, render_profile="portrait").workflow == "portrait"
    assert derive_generation_params(None, 4.0, render_profile="realistic").workflow is None


@pytest.mark.parametrize(
    "camera_move, camera_motion, expected",
    [
        ("Slow zoom in on the face", "", "zoom_in"),
        ("", "dolly out to reveal", "zoom_out"),
        ("Pan left across the skyline", None, "pan_left"),
        ("panning right", "", "pan_right"),
        ("locked off tripod", "static", "static"),
        (None, None, "static"),
    ],
)
def test_map_camera_motion(camera_move, camera_motion, expected):
    assert map_camera_motion(camera_move, camera_motion) == expected
