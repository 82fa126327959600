"""Pure state transitions for a music video project.

`transition(state, event)` is the only way a `ProjectState` changes. It never
mutates its input and never raises for sequencing mistakes: an event whose
prerequisites are missing (no analysis yet, unknown shot id, ...) returns the
input state unchanged.
"""

import logging
from functools import singledispatch
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .events import (
    AddTokenUsage,
    ClearApiError,
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
    SetAudioUrl,
    SetBibleImages,
    SetBibles,
    SetExecutiveFeedback,
    SetModelTier,
    SetPostProductionStatus,
    SetSceneTransitions,
    SetSingerGender,
    SetSong,
    SetStage,
    SetStoryboard,
    SetVisualReport,
    ShotMediaUploaded,
    StartProcessing,
    StartReview,
    StartVisualReview,
    UpdateCreativeBrief,
)
from .models import (
    ProjectState,
    ReviewState,
    ReviewStatus,
    Scene,
    Shot,
    Stage,
    Storyboard,
    Transition,
)

logger = logging.getLogger(__name__)


def _update(state: ProjectState, **changes) -> ProjectState:
    return state.model_copy(update=changes)


def normalize_transitions(
    transitions: Sequence[Optional[Transition]], shot_count: int
) -> List[Optional[Transition]]:
    """Pad with None or truncate so the list lines up with the shots."""
    items = list(transitions)[:shot_count]
    return items + [None] * (shot_count - len(items))


def _normalize_storyboard(storyboard: Storyboard) -> Storyboard:
    scenes = [
        scene.model_copy(update={"transitions": normalize_transitions(scene.transitions, len(scene.shots))})
        if scene.transitions else scene
        for scene in storyboard.scenes
    ]
    return storyboard.model_copy(update={"scenes": scenes})


def _update_shot(state: ProjectState, shot_id: str, **changes) -> ProjectState:
    """Replace fields of one shot. Unknown ids return the state unchanged."""
    if state.storyboard is None:
        return state
    shot = state.storyboard.find_shot(shot_id)
    if shot is None:
        return state
    return _update(state, storyboard=state.storyboard.replace_shot(shot.model_copy(update=changes)))


def _stage_allowed(state: ProjectState, stage: Stage) -> bool:
    if stage == Stage.UPLOAD:
        return True
    if stage == Stage.CONTROLS:
        return state.song_analysis is not None
    if stage == Stage.STORYBOARD:
        return state.storyboard is not None
    # PLAN is only entered through PlanningStarted, REVIEW through StartReview.
    return False


def transition(state: ProjectState, event: Event) -> ProjectState:
    """Return the state that results from applying `event` to `state`.

    Args:
        state: Current project state. Never modified.
        event: Event to apply.

    Returns:
        The next state, or `state` itself when the event does not apply.
    """
    return _apply(event, state)


@singledispatch
def _apply(event: Event, state: ProjectState) -> ProjectState:
    logger.debug(f"Ignoring unknown event {type(event).__name__}")
    return state


@_apply.register
def _start_processing(event: StartProcessing, state: ProjectState) -> ProjectState:
    return _update(state, is_processing=True)


@_apply.register
def _set_api_error(event: SetApiError, state: ProjectState) -> ProjectState:
    return _update(state, api_error=event.message, is_processing=False)


@_apply.register
def _clear_api_error(event: ClearApiError, state: ProjectState) -> ProjectState:
    return _update(state, api_error=None)


@_apply.register
def _set_song(event: SetSong, state: ProjectState) -> ProjectState:
    return _update(
        state,
        song=event.song,
        singer_gender=event.singer_gender,
        model_tier=event.model_tier,
    )


@_apply.register
def _set_audio_url(event: SetAudioUrl, state: ProjectState) -> ProjectState:
    return _update(state, audio_url=event.url)


@_apply.register
def _set_singer_gender(event: SetSingerGender, state: ProjectState) -> ProjectState:
    return _update(state, singer_gender=event.singer_gender)


@_apply.register
def _set_model_tier(event: SetModelTier, state: ProjectState) -> ProjectState:
    return _update(state, model_tier=event.model_tier)


@_apply.register
def _set_analysis(event: SetAnalysis, state: ProjectState) -> ProjectState:
    return _update(state, song_analysis=event.analysis, stage=Stage.CONTROLS, is_processing=False)


@_apply.register
def _update_brief(event: UpdateCreativeBrief, state: ProjectState) -> ProjectState:
    if state.storyboard is not None:
        return state
    try:
        brief = state.creative_brief.merged(dict(event.changes))
    except ValidationError as e:
        logger.warning(f"Rejected creative brief update: {e}")
        return state
    return _update(state, creative_brief=brief)


@_apply.register
def _set_stage(event: SetStage, state: ProjectState) -> ProjectState:
    if not _stage_allowed(state, event.stage):
        return state
    return _update(state, stage=event.stage)


@_apply.register
def _planning_started(event: PlanningStarted, state: ProjectState) -> ProjectState:
    if state.song_analysis is None:
        return state
    return _update(state, stage=Stage.PLAN, is_processing=True, api_error=None)


@_apply.register
def _set_bibles(event: SetBibles, state: ProjectState) -> ProjectState:
    if state.song_analysis is None:
        return state
    return _update(state, bibles=event.bibles)


@_apply.register
def _set_storyboard(event: SetStoryboard, state: ProjectState) -> ProjectState:
    if state.bibles is None:
        return state
    return _update(
        state,
        storyboard=_normalize_storyboard(event.storyboard),
        stage=Stage.STORYBOARD,
        is_processing=False,
    )


@_apply.register
def _planning_failed(event: PlanningFailed, state: ProjectState) -> ProjectState:
    stage = Stage.CONTROLS if state.stage == Stage.PLAN else state.stage
    return _update(state, api_error=event.message, stage=stage, is_processing=False)


@_apply.register
def _set_bible_images(event: SetBibleImages, state: ProjectState) -> ProjectState:
    if state.bibles is None:
        return state
    bibles = state.bibles.with_images(event.kind, event.entry_id, list(event.image_urls))
    if bibles is state.bibles:
        return state
    return _update(state, bibles=bibles)


@_apply.register
def _set_scene_transitions(event: SetSceneTransitions, state: ProjectState) -> ProjectState:
    if state.storyboard is None or state.storyboard.find_scene(event.scene_id) is None:
        return state

    def replace(scene: Scene) -> Scene:
        if scene.id != event.scene_id:
            return scene
        return scene.model_copy(
            update={"transitions": normalize_transitions(event.transitions, len(scene.shots))}
        )

    scenes = [replace(scene) for scene in state.storyboard.scenes]
    return _update(state, storyboard=state.storyboard.model_copy(update={"scenes": scenes}))


@_apply.register
def _replace_shot(event: ReplaceShot, state: ProjectState) -> ProjectState:
    if state.storyboard is None or state.storyboard.find_shot(event.shot.id) is None:
        return state
    return _update(state, storyboard=state.storyboard.replace_shot(event.shot))


@_apply.register
def _patch_shot(event: PatchShot, state: ProjectState) -> ProjectState:
    if state.storyboard is None:
        return state
    shot = state.storyboard.find_shot(event.shot_id)
    if shot is None:
        return state
    changes = {key: value for key, value in event.changes.items() if key != "id"}
    try:
        patched = Shot.model_validate({**shot.model_dump(), **changes})
    except ValidationError as e:
        logger.warning(f"Rejected patch for shot {event.shot_id}: {e}")
        return state
    return _update(state, storyboard=state.storyboard.replace_shot(patched))


@_apply.register
def _shot_media_uploaded(event: ShotMediaUploaded, state: ProjectState) -> ProjectState:
    if event.media == "image":
        return _update_shot(
            state,
            event.shot_id,
            preview_image_url=event.url,
            clip_url=None,
            is_generating_clip=False,
        )
    if event.media == "video":
        return _update_shot(state, event.shot_id, clip_url=event.url, is_generating_clip=False)
    return state


@_apply.register
def _clip_started(event: ClipStarted, state: ProjectState) -> ProjectState:
    if state.storyboard is None:
        return state
    shot = state.storyboard.find_shot(event.shot_id)
    if shot is None or not shot.has_ready_image:
        return state
    return _update_shot(state, event.shot_id, is_generating_clip=True, generation_progress=0.0)


def _active_shot(state: ProjectState, shot_id: str) -> Optional[Shot]:
    if state.storyboard is None:
        return None
    shot = state.storyboard.find_shot(shot_id)
    if shot is None or not shot.is_generating_clip:
        return None
    return shot


@_apply.register
def _clip_progress(event: ClipProgress, state: ProjectState) -> ProjectState:
    if _active_shot(state, event.shot_id) is None:
        return state
    progress = max(0.0, min(100.0, float(event.progress)))
    return _update_shot(state, event.shot_id, generation_progress=progress)


@_apply.register
def _clip_completed(event: ClipCompleted, state: ProjectState) -> ProjectState:
    # A completion arriving after another one (push and poll racing) is a no-op.
    if _active_shot(state, event.shot_id) is None:
        return state
    return _update_shot(
        state,
        event.shot_id,
        clip_url=event.clip_url,
        is_generating_clip=False,
        generation_progress=100.0,
    )


@_apply.register
def _clip_failed(event: ClipFailed, state: ProjectState) -> ProjectState:
    if _active_shot(state, event.shot_id) is None:
        return state
    return _update_shot(state, event.shot_id, is_generating_clip=False)


@_apply.register
def _add_token_usage(event: AddTokenUsage, state: ProjectState) -> ProjectState:
    try:
        usage = state.token_usage.merged(event.usage)
    except ValidationError as e:
        logger.warning(f"Rejected token usage update: {e}")
        return state
    return _update(state, token_usage=usage)


@_apply.register
def _set_post_production_status(event: SetPostProductionStatus, state: ProjectState) -> ProjectState:
    return _update(state, post_production=state.post_production.with_status(event.task, event.status))


@_apply.register
def _start_review(event: StartReview, state: ProjectState) -> ProjectState:
    if state.storyboard is None:
        return state
    return _update(
        state,
        stage=Stage.REVIEW,
        review=ReviewState(
            executive_status=ReviewStatus.IN_PROGRESS,
            visual_status=ReviewStatus.IN_PROGRESS,
        ),
    )


@_apply.register
def _set_executive_feedback(event: SetExecutiveFeedback, state: ProjectState) -> ProjectState:
    review = state.review or ReviewState()
    changes = {
        "review": review.model_copy(
            update={"executive_feedback": event.feedback, "executive_status": ReviewStatus.DONE}
        )
    }
    if state.storyboard is not None:
        changes["storyboard"] = state.storyboard.model_copy(
            update={"executive_producer_feedback": event.feedback}
        )
    return _update(state, **changes)


@_apply.register
def _start_visual_review(event: StartVisualReview, state: ProjectState) -> ProjectState:
    review = state.review or ReviewState()
    return _update(
        state,
        review=review.model_copy(update={"visual_status": ReviewStatus.IN_PROGRESS, "visual_report": None}),
    )


@_apply.register
def _set_visual_report(event: SetVisualReport, state: ProjectState) -> ProjectState:
    review = state.review or ReviewState()
    return _update(
        state,
        review=review.model_copy(update={"visual_status": ReviewStatus.DONE, "visual_report": event.report}),
    )


@_apply.register
def _replace_state(event: ReplaceState, state: ProjectState) -> ProjectState:
    return event.state
