import pytest
from pydantic import ValidationError

from conftest import make_analysis, make_bibles, make_shot, make_state, make_storyboard, ready

from songreel.events import (
    AddTokenUsage,
    ClipCompleted,
    ClipFailed,
    ClipProgress,
    ClipStarted,
    Event,
    PatchShot,
    PlanningFailed,
    PlanningStarted,
    ReplaceShot,
    ReplaceState,
    SetAnalysis,
    SetApiError,
    SetBibleImages,
    SetBibles,
    SetExecutiveFeedback,
    SetSceneTransitions,
    SetStage,
    SetStoryboard,
    ShotMediaUploaded,
    StartReview,
    UpdateCreativeBrief,
)
from songreel.models import (
    ERROR_SENTINEL,
    AssetStatus,
    BibleKind,
    ExecutiveFeedback,
    ProjectState,
    ReviewStatus,
    Stage,
    Transition,
)
from songreel.state_machine import normalize_transitions, transition


def test_transition_never_mutates_input():
    state = make_state()
    before = state.model_dump()

    after = transition(state, PatchShot("s1", {"subject": "changed"}))

    assert state.model_dump() == before
    assert after.storyboard.find_shot("s1").subject == "changed"


def test_models_are_frozen():
    state = make_state()
    with pytest.raises(ValidationError):
        state.stage = Stage.REVIEW


def test_unknown_event_returns_state_unchanged():
    class Unhandled(Event):
        pass

    state = make_state()
    assert transition(state, Unhandled()) is state


def test_set_analysis_moves_to_controls():
    state = transition(ProjectState(), SetAnalysis(make_analysis()))

    assert state.stage == Stage.CONTROLS
    assert state.song_analysis.title == "Night Drive"


def test_set_stage_requires_prerequisites():
    empty = ProjectState()
    assert transition(empty, SetStage(Stage.CONTROLS)).stage == Stage.UPLOAD
    assert transition(empty, SetStage(Stage.STORYBOARD)).stage == Stage.UPLOAD
    assert transition(empty, SetStage(Stage.PLAN)).stage == Stage.UPLOAD

    state = make_state(stage=Stage.REVIEW)
    assert transition(state, SetStage(Stage.STORYBOARD)).stage == Stage.STORYBOARD
    assert transition(state, SetStage(Stage.UPLOAD)).stage == Stage.UPLOAD


def test_review_is_only_entered_with_fresh_feedback():
    state = transition(make_state(), StartReview())
    state = transition(state, SetExecutiveFeedback(ExecutiveFeedback(final_notes="old")))
    state = transition(state, SetStage(Stage.STORYBOARD))

    assert transition(state, SetStage(Stage.REVIEW)).stage == Stage.STORYBOARD

    state = transition(state, StartReview())
    assert state.stage == Stage.REVIEW
    assert state.review.executive_status == ReviewStatus.IN_PROGRESS
    assert state.review.visual_status == ReviewStatus.IN_PROGRESS


def test_planning_flow_and_fallback_keeps_bibles():
    state = make_state(stage=Stage.CONTROLS, with_storyboard=False, bibles=None)

    state = transition(state, PlanningStarted())
    assert state.stage == Stage.PLAN
    assert state.is_processing

    state = transition(state, SetBibles(make_bibles()))
    state = transition(state, PlanningFailed("storyboard model unavailable"))

    assert state.stage == Stage.CONTROLS
    assert state.api_error == "storyboard model unavailable"
    assert state.bibles is not None
    assert not state.is_processing


def test_planning_requires_analysis():
    assert transition(ProjectState(), PlanningStarted()).stage == Stage.UPLOAD
    assert transition(ProjectState(), SetBibles(make_bibles())).bibles is None


def test_storyboard_requires_bibles_and_normalizes_transitions():
    storyboard = make_storyboard()
    scene = storyboard.scenes[0].model_copy(update={"transitions": [Transition(type="Crossfade")]})
    storyboard = storyboard.model_copy(update={"scenes": [scene, storyboard.scenes[1]]})

    without_bibles = make_state(stage=Stage.PLAN, with_storyboard=False, bibles=None)
    assert transition(without_bibles, SetStoryboard(storyboard)).storyboard is None

    state = transition(make_state(stage=Stage.PLAN, with_storyboard=False), SetStoryboard(storyboard))
    assert state.stage == Stage.STORYBOARD
    assert state.storyboard.scenes[0].transitions == [Transition(type="Crossfade"), None]
    assert state.storyboard.scenes[1].transitions == []


def test_brief_is_merged_until_storyboard_exists():
    state = make_state(stage=Stage.CONTROLS, with_storyboard=False)

    state = transition(state, UpdateCreativeBrief({"feel": "dreamy"}))
    state = transition(state, UpdateCreativeBrief({"style": "grainy 16mm"}))
    assert state.creative_brief.feel == "dreamy"
    assert state.creative_brief.style == "grainy 16mm"

    locked = make_state()
    assert transition(locked, UpdateCreativeBrief({"feel": "dreamy"})) is locked


def test_patch_shot_is_addressed_by_id_only():
    state = make_state()

    patched = transition(state, PatchShot("s2", {"subject": "new", "id": "hijack"}))

    assert patched.storyboard.find_shot("s2").subject == "new"
    assert patched.storyboard.find_shot("hijack") is None
    assert patched.storyboard.find_shot("s1") == state.storyboard.find_shot("s1")
    assert patched.storyboard.find_shot("s3") == state.storyboard.find_shot("s3")


def test_unknown_shot_id_is_a_noop():
    state = make_state()

    assert transition(state, PatchShot("missing", {"subject": "x"})) is state
    assert transition(state, ReplaceShot(make_shot("missing"))) is state
    assert transition(state, ClipCompleted("missing", "https://c")) is state


def test_invalid_patch_is_rejected():
    state = make_state()
    assert transition(state, PatchShot("s1", {"generation_progress": 250})) is state


def test_clip_requires_ready_image():
    state = make_state()
    assert transition(state, ClipStarted("s1")) is state

    errored = transition(state, PatchShot("s1", {"preview_image_url": ERROR_SENTINEL}))
    assert transition(errored, ClipStarted("s1")) is errored


def test_clip_lifecycle():
    state = make_state(storyboard=make_storyboard([ready(make_shot("s1"))]))

    state = transition(state, ClipStarted("s1"))
    assert state.storyboard.find_shot("s1").is_generating_clip

    state = transition(state, ClipProgress("s1", 42))
    assert state.storyboard.find_shot("s1").generation_progress == 42

    state = transition(state, ClipCompleted("s1", "https://clips.example/s1.mp4"))
    shot = state.storyboard.find_shot("s1")
    assert shot.clip_url == "https://clips.example/s1.mp4"
    assert shot.generation_progress == 100
    assert not shot.is_generating_clip

    # A second completion (push after poll) changes nothing.
    assert transition(state, ClipCompleted("s1", "https://clips.example/other.mp4")) is state
    assert transition(state, ClipProgress("s1", 10)) is state


def test_clip_failed_clears_generating_flag():
    state = make_state(storyboard=make_storyboard([ready(make_shot("s1"))]))
    state = transition(state, ClipStarted("s1"))

    state = transition(state, ClipFailed("s1"))

    assert not state.storyboard.find_shot("s1").is_generating_clip
    assert state.storyboard.find_shot("s1").clip_url is None


def test_image_upload_invalidates_clip():
    shot = ready(make_shot("s1")).model_copy(update={"clip_url": "https://old.mp4", "is_generating_clip": True})
    state = make_state(storyboard=make_storyboard([shot]))

    state = transition(state, ShotMediaUploaded("s1", "image", "data:image/png;base64,BBBB"))

    shot = state.storyboard.find_shot("s1")
    assert shot.preview_image_url == "data:image/png;base64,BBBB"
    assert shot.clip_url is None
    assert not shot.is_generating_clip


def test_video_upload_sets_clip():
    state = transition(make_state(), ShotMediaUploaded("s2", "video", "blob:clip"))
    assert state.storyboard.find_shot("s2").clip_url == "blob:clip"


def test_bible_images_addressed_by_id():
    state = make_state()
    character_id = state.bibles.characters[0].id

    state = transition(state, SetBibleImages(BibleKind.CHARACTER, character_id, ["https://img/c.png"]))
    assert state.bibles.characters[0].image_status == AssetStatus.READY

    state = transition(state, SetBibleImages(BibleKind.CHARACTER, character_id, [ERROR_SENTINEL]))
    assert state.bibles.characters[0].image_status == AssetStatus.ERROR

    assert transition(state, SetBibleImages(BibleKind.LOCATION, "unknown", ["x"])) is state


def test_scene_transitions_are_aligned_with_shots():
    state = make_state()
    many = [Transition(type="Glitch")] * 5

    state = transition(state, SetSceneTransitions("scene_1", many))

    assert len(state.storyboard.scenes[0].transitions) == 2
    assert transition(state, SetSceneTransitions("nope", many)) is state


def test_normalize_transitions_pads_and_truncates():
    cut = Transition(type="Hard Cut")
    assert normalize_transitions([cut], 3) == [cut, None, None]
    assert normalize_transitions([cut, cut, cut], 2) == [cut, cut]
    assert normalize_transitions([], 0) == []


def test_trailing_transition_is_kept_as_given():
    cut = Transition(type="Crossfade", duration=0.5)
    storyboard = make_storyboard([make_shot("s1"), make_shot("s2")])
    scene_id = storyboard.scenes[0].id

    state = transition(make_state(storyboard=storyboard), SetSceneTransitions(scene_id, [cut, cut]))

    assert state.storyboard.scenes[0].transitions == [cut, cut]


def test_token_usage_accumulates():
    state = ProjectState()
    state = transition(state, AddTokenUsage({"analysis": 100}))
    state = transition(state, AddTokenUsage({"analysis": 50, "performance": {"render": {"gpu": 1}}}))
    state = transition(state, AddTokenUsage({"performance": {"render": {"gpu": 2, "cpu": 3}}}))

    assert state.token_usage.analysis == 150
    assert state.token_usage.performance == {"render": {"gpu": 3, "cpu": 3}}


@pytest.mark.parametrize("usage", [{"analysis": "n/a"}, {"storyboard": [1, 2]}])
def test_malformed_token_usage_is_ignored(usage):
    state = make_state()

    assert transition(state, AddTokenUsage(usage)) == state


def test_api_error_latest_wins_and_stops_processing():
    state = ProjectState(is_processing=True)
    state = transition(state, SetApiError("first"))
    state = transition(state, SetApiError("second"))

    assert state.api_error == "second"
    assert not state.is_processing


def test_review_flow():
    assert transition(ProjectState(), StartReview()).stage == Stage.UPLOAD

    state = transition(make_state(), StartReview())
    assert state.stage == Stage.REVIEW
    assert state.review.executive_status == ReviewStatus.IN_PROGRESS

    feedback = ExecutiveFeedback(pacing_score=7, final_notes="ok")
    state = transition(state, SetExecutiveFeedback(feedback))
    assert state.review.executive_status == ReviewStatus.DONE
    assert state.storyboard.executive_producer_feedback == feedback


def test_replace_state():
    assert transition(make_state(), ReplaceState(ProjectState())) == ProjectState()
