"""Pipeline operations for one music video project.

`Production` is the glue between the collaborators (Claude agents, Imagen,
the render backend) and the `ProjectStore`. Each operation reads the current
state, calls collaborators, and reports every outcome as an event. Faults are
never raised to the caller: they end up in `ProjectState.api_error`.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Set, Tuple, Union

from .events import (
    AddTokenUsage,
    ClearApiError,
    Event,
    PatchShot,
    PlanningFailed,
    PlanningStarted,
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
    SetSong,
    SetStoryboard,
    SetVisualReport,
    ShotMediaUploaded,
    StartProcessing,
    StartReview,
    StartVisualReview,
    UpdateCreativeBrief,
)
from .generation_params import derive_generation_params, map_camera_motion
from .models import (
    ERROR_SENTINEL,
    VFX_PRESETS,
    AssetStatus,
    BibleKind,
    ExecutiveFeedback,
    ModelTier,
    PostProductionTask,
    ProjectState,
    Scene,
    Shot,
    SingerGender,
    SongFile,
    TaskStatus,
)
from .poller import ClipBackend, ClipError, ClipPoller, ClipRequest, PushNotification
from .prompts import clip_prompt
from .runner import BatchItemResult, BatchRunner, call_blocking
from .services.base import CreativeGenerator, ImageGenerator, Reviewer, SongAnalyzer
from .snapshot import LoadedSnapshot, SnapshotError, load_snapshot, read_snapshot, write_snapshot
from .store import ProjectStore

logger = logging.getLogger(__name__)

FALLBACK_EXECUTIVE_FEEDBACK = ExecutiveFeedback(final_notes="Error generating feedback.")


def _error_message(error: BaseException, fallback: str) -> str:
    return str(error) or fallback


class Production:
    """All user-facing operations of the pipeline.

    Example:
        async with ProjectStore() as store:
            production = Production(store, analyzer=agent, creative=agent,
                                    reviewer=reviewer, images=images, backend=backend)
            await production.process_song_upload(song, lyrics)
            await production.generate_creative_assets()
            await production.wait_for_background()
    """

    def __init__(
        self,
        store: ProjectStore,
        analyzer: SongAnalyzer,
        creative: CreativeGenerator,
        reviewer: Reviewer,
        images: ImageGenerator,
        backend: ClipBackend,
        runner: Optional[BatchRunner] = None,
        poller: Optional[ClipPoller] = None,
    ) -> None:
        """Initialize the production.

        Args:
            store: Store owning the project state.
            analyzer: Song analysis collaborator.
            creative: Bibles, storyboard and suggestion collaborator.
            reviewer: Executive and visual review collaborator.
            images: Still image collaborator.
            backend: Render backend for clips and audio upload.
            runner: Batch runner. Defaults to a `BatchRunner` with config pacing.
            poller: Clip poller. Defaults to a `ClipPoller` over `backend`.
        """
        self._store = store
        self._analyzer = analyzer
        self._creative = creative
        self._reviewer = reviewer
        self._images = images
        self._backend = backend
        self._runner = runner or BatchRunner()
        self._poller = poller or ClipPoller(backend, store)
        self._background: Set[asyncio.Task] = set()

    @property
    def state(self) -> ProjectState:
        return self._store.state

    @property
    def poller(self) -> ClipPoller:
        return self._poller

    # Helpers

    async def _emit(self, *events: Event) -> ProjectState:
        state = self._store.state
        for event in events:
            state = await self._store.dispatch(event)
        return state

    async def _fail(self, message: str) -> None:
        logger.error(message)
        await self._store.dispatch(SetApiError(message))

    async def _add_usage(self, category: str, usage: int) -> None:
        if usage:
            await self._store.dispatch(AddTokenUsage({category: usage}))

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.debug(f"Started background task {name}")
        return task

    async def wait_for_background(self) -> None:
        """Wait for background work (bible images, transitions) to finish."""
        while self._background:
            results = await asyncio.gather(*list(self._background), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Background task failed: {result}")

    # Upload and controls

    async def process_song_upload(
        self,
        song: SongFile,
        lyrics: str,
        title: str = "",
        artist: str = "",
        singer_gender: SingerGender = SingerGender.UNSPECIFIED,
        model_tier: ModelTier = ModelTier.FREEMIUM,
    ) -> bool:
        """Store the song, upload its audio and analyze it.

        A failed audio upload only costs lip-sync; analysis still runs.

        Returns:
            True if the analysis was stored.
        """
        await self._emit(StartProcessing(), SetSong(song, singer_gender, model_tier))

        try:
            audio_url = await call_blocking(self._backend.upload_audio, song)
            await self._store.dispatch(SetAudioUrl(audio_url))
        except Exception as e:
            logger.warning(f"Audio upload failed; continuing without audio URL: {e}")

        try:
            analysis, usage = await call_blocking(
                self._analyzer.analyze_song, song, lyrics, title, artist, model_tier
            )
        except Exception as e:
            await self._fail(_error_message(e, "Failed to analyze song."))
            return False

        await self._emit(SetAnalysis(analysis))
        await self._add_usage("analysis", usage)
        logger.info(f"Analyzed '{analysis.title}' ({analysis.duration:.0f}s, {analysis.bpm:.0f} BPM)")
        return True

    async def update_creative_brief(self, changes: Mapping[str, Any]) -> ProjectState:
        return await self._store.dispatch(UpdateCreativeBrief(dict(changes)))

    async def set_model_tier(self, tier: ModelTier) -> ProjectState:
        return await self._store.dispatch(SetModelTier(ModelTier(tier)))

    async def clear_api_error(self) -> ProjectState:
        return await self._store.dispatch(ClearApiError())

    async def analyze_moodboard(self, images: List[str]) -> Optional[Dict[str, Any]]:
        """Merge feel, style, mood and palette read off reference images into the brief."""
        if not images:
            return None
        try:
            changes, usage = await call_blocking(
                self._creative.analyze_moodboard, list(images), self.state.model_tier
            )
        except Exception as e:
            await self._fail(_error_message(e, "Failed to analyze moodboard."))
            return None
        await self.update_creative_brief(changes)
        await self._add_usage("moodboard_analysis", usage)
        return changes

    async def get_director_suggestions(self) -> Optional[Dict[str, Any]]:
        """Let the director fill in the rest of the creative brief."""
        state = self.state
        if state.song_analysis is None:
            return None
        try:
            changes, usage = await call_blocking(
                self._creative.suggest_brief, state.song_analysis, state.creative_brief, state.model_tier
            )
        except Exception as e:
            await self._fail(_error_message(e, "Failed to get AI Director suggestions."))
            return None
        await self.update_creative_brief(changes)
        await self._add_usage("bibles", usage)
        return changes

    # Planning

    async def generate_creative_assets(self) -> bool:
        """Generate bibles, then the storyboard.

        Bible images and scene transitions are generated in the background;
        use `wait_for_background()` to wait for them. On failure the project
        falls back to the controls stage with any bibles kept.

        Returns:
            True if a storyboard was stored.
        """
        state = self.state
        if state.song_analysis is None:
            return False
        await self._store.dispatch(PlanningStarted())
        analysis, brief, tier = state.song_analysis, state.creative_brief, state.model_tier

        try:
            bibles, usage = await call_blocking(
                self._creative.generate_bibles, analysis, brief, state.singer_gender, tier
            )
            await self._store.dispatch(SetBibles(bibles))
            await self._add_usage("bibles", usage)
            self._spawn(self.generate_bible_images(), "bible images")

            storyboard, usage = await call_blocking(
                self._creative.generate_storyboard, analysis, brief, bibles, tier
            )
            await self._store.dispatch(SetStoryboard(storyboard))
            await self._add_usage("storyboard", usage)
        except Exception as e:
            message = _error_message(e, "Failed to generate creative assets.")
            logger.error(f"Planning failed: {message}")
            await self._store.dispatch(PlanningFailed(message))
            return False

        self._spawn(self.generate_all_transitions(), "transitions")
        logger.info(f"Storyboard ready: {len(storyboard.scenes)} scenes")
        return True

    async def generate_bible_images(self) -> int:
        """Generate reference images for bible entries without one.

        Characters come first, then locations. Entries already ready or
        failed are left alone.

        Returns:
            Number of entries processed.
        """
        bibles = self.state.bibles
        if bibles is None:
            return 0
        items = [
            (kind, entry)
            for kind in (BibleKind.CHARACTER, BibleKind.LOCATION)
            for entry in bibles.entries(kind)
            if entry.image_status == AssetStatus.PENDING
        ]

        def generate(item):
            kind, entry = item
            brief, tier = self.state.creative_brief, self.state.model_tier
            if kind == BibleKind.CHARACTER:
                return self._images.generate_character_image(entry, brief, tier)
            return self._images.generate_location_image(entry, brief, tier)

        async def on_result(result: BatchItemResult) -> None:
            kind, entry = result.item
            if result.ok:
                await self._store.dispatch(SetBibleImages(kind, entry.id, [result.value]))
                await self._add_usage("image_generation", result.usage)
            else:
                await self._store.dispatch(SetBibleImages(kind, entry.id, [ERROR_SENTINEL]))
                await self._fail(_error_message(
                    result.error, f"Image generation failed for {kind.value}: {entry.name}."
                ))

        results = await self._runner.run_batch(items, generate, on_result, label="bible image")
        return len(results)

    async def generate_all_transitions(self) -> int:
        """Generate transitions for every scene of the storyboard.

        Returns:
            Number of scenes processed.
        """
        state = self.state
        if state.storyboard is None or state.bibles is None:
            return 0

        def generate(scene: Scene):
            return self._creative.generate_transitions(
                scene, self.state.bibles, self.state.creative_brief, self.state.model_tier
            )

        async def on_result(result: BatchItemResult) -> None:
            scene = result.item
            if result.ok:
                await self._store.dispatch(SetSceneTransitions(scene.id, result.value))
                await self._add_usage("transitions", result.usage)
            else:
                await self._fail(_error_message(
                    result.error, f"Transition generation failed for scene {scene.id}."
                ))

        results = await self._runner.run_batch(
            state.storyboard.scenes, generate, on_result, label="scene transition"
        )
        return len(results)

    # Stills

    async def generate_all_images(self) -> int:
        """Generate stills for every shot whose image is still pending.

        Shots that already have an image (or a failed one) are skipped, so
        calling this again after an interruption resumes where it stopped.

        Returns:
            Number of shots processed.
        """
        state = self.state
        if state.storyboard is None or state.bibles is None:
            return 0
        pending = [
            shot.id
            for _, _, shot in state.storyboard.iter_shots()
            if shot.image_status == AssetStatus.PENDING
        ]

        def generate(shot_id: str):
            current = self.state
            shot = current.storyboard.find_shot(shot_id) if current.storyboard else None
            if shot is None:
                raise LookupError(f"Shot {shot_id} no longer exists")
            return self._images.generate_shot_image(
                shot, current.bibles, current.creative_brief, current.model_tier
            )

        async def on_result(result: BatchItemResult) -> None:
            shot_id = result.item
            if result.ok:
                await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": result.value}))
                await self._add_usage("image_generation", result.usage)
            else:
                await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": ERROR_SENTINEL}))
                await self._fail(_error_message(result.error, f"Image generation failed for shot {shot_id}."))

        results = await self._runner.run_batch(pending, generate, on_result, label="shot image")
        return len(results)

    async def regenerate_image(self, shot_id: str) -> bool:
        """Generate a fresh still for one shot."""
        state = self.state
        shot = state.storyboard.find_shot(shot_id) if state.storyboard else None
        if shot is None or state.bibles is None:
            return False

        await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": ""}))
        try:
            url, usage = await call_blocking(
                self._images.generate_shot_image, shot, state.bibles, state.creative_brief, state.model_tier
            )
        except Exception as e:
            await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": ERROR_SENTINEL}))
            await self._fail(_error_message(e, "Failed to regenerate image."))
            return False

        await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": url}))
        await self._add_usage("image_generation", usage)
        return True

    async def regenerate_bible_image(self, kind: BibleKind, entry_id: str) -> bool:
        """Generate a fresh reference image for one bible entry."""
        state = self.state
        kind = BibleKind(kind)
        entry = state.bibles.find(kind, entry_id) if state.bibles else None
        if entry is None:
            return False

        await self._store.dispatch(SetBibleImages(kind, entry_id, []))
        generate = (
            self._images.generate_character_image
            if kind == BibleKind.CHARACTER
            else self._images.generate_location_image
        )
        try:
            url, usage = await call_blocking(generate, entry, state.creative_brief, state.model_tier)
        except Exception as e:
            await self._store.dispatch(SetBibleImages(kind, entry_id, [ERROR_SENTINEL]))
            await self._fail(_error_message(e, f"Failed to regenerate image for {kind.value} {entry.name}."))
            return False

        await self._add_usage("image_generation", usage)
        await self._store.dispatch(SetBibleImages(kind, entry_id, [url]))
        return True

    async def edit_image(self, shot_id: str, instruction: str) -> bool:
        """Edit a shot's still; the previous image is restored on failure."""
        state = self.state
        shot = state.storyboard.find_shot(shot_id) if state.storyboard else None
        if shot is None or not shot.has_ready_image:
            return False

        original_url = shot.preview_image_url
        await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": ""}))
        try:
            url, usage = await call_blocking(
                self._images.edit_shot_image, original_url, instruction, state.model_tier
            )
        except Exception as e:
            await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": original_url}))
            await self._fail(_error_message(e, "Failed to edit image."))
            return False

        await self._store.dispatch(PatchShot(shot_id, {"preview_image_url": url}))
        await self._add_usage("image_editing", usage)
        return True

    async def upload_shot_media(self, shot_id: str, media: str, url: str) -> ProjectState:
        """Replace a shot's image or clip with user-supplied media."""
        if media not in ("image", "video"):
            raise ValueError(f"Unknown media type: {media}")
        return await self._store.dispatch(ShotMediaUploaded(shot_id, media, url))

    # Clips

    def build_clip_request(self, shot: Shot, quality: str = "draft") -> ClipRequest:
        """Assemble the render request for a shot with a ready still."""
        state = self.state
        params = derive_generation_params(
            shot.video_model, shot.duration, shot.workflow_hint, shot.render_profile
        )
        return ClipRequest(
            shot_id=shot.id,
            image_url=shot.preview_image_url,
            prompt=clip_prompt(shot, state.bibles, state.creative_brief, detailed=quality == "high"),
            duration=shot.duration,
            negative_prompt=params.negative_prompt,
            quality=quality,
            fps=params.fps,
            camera_motion=map_camera_motion(shot.camera_move, shot.cinematic_enhancements.camera_motion),
            lip_sync=shot.lip_sync_hint,
            audio_url=state.audio_url,
            workflow=params.workflow,
            video_model=shot.video_model,
            render_profile=shot.render_profile,
        )

    async def generate_clip(self, shot_id: str, quality: str = "draft") -> bool:
        """Render a clip for one shot and wait for it.

        Returns:
            True if the shot got a clip.
        """
        state = self.state
        shot = state.storyboard.find_shot(shot_id) if state.storyboard else None
        if shot is None or not shot.has_ready_image:
            return False

        try:
            await self._poller.run(self.build_clip_request(shot, quality))
        except ClipError as e:
            await self._fail(_error_message(e, "Failed to generate clip."))
            return False
        return True

    async def regenerate_clip(self, shot_id: str, quality: str = "high") -> bool:
        return await self.generate_clip(shot_id, quality)

    async def generate_storyboard_batch(self, quality: str = "high") -> List[str]:
        """Render clips for every shot with a ready still, one at a time.

        Shots are processed by start time, then scene and shot position.

        Returns:
            Ids of the shots whose clip failed.
        """
        storyboard = self.state.storyboard
        if storyboard is None:
            return []
        ordered: List[Tuple[float, int, int, str]] = sorted(
            (shot.start, scene_index, shot_index, shot.id)
            for scene_index, shot_index, shot in storyboard.iter_shots()
            if shot.has_ready_image
        )
        failed = [shot_id for *_, shot_id in ordered if not await self.generate_clip(shot_id, quality)]
        if failed:
            await self._fail(f"Some clips failed to generate: {', '.join(failed)}")
        return failed

    async def handle_push(self, payload: Union[PushNotification, Mapping[str, Any]]) -> bool:
        """Apply a `video_generated` notification from the render backend."""
        if isinstance(payload, PushNotification):
            notification = payload
        else:
            try:
                notification = PushNotification.from_payload(payload)
            except ValueError as e:
                logger.warning(f"Ignoring malformed push notification: {e}")
                return False
        return await self._poller.handle_push(notification)

    # Post-production

    async def set_vfx_for_shot(self, shot_id: str, vfx: Optional[str]) -> ProjectState:
        """Set or clear (None or "None") the effect of one shot."""
        if vfx == "None":
            vfx = None
        if vfx is not None and vfx not in VFX_PRESETS:
            raise ValueError(f"Unknown VFX preset: {vfx}")
        return await self._store.dispatch(PatchShot(shot_id, {"vfx": vfx}))

    async def apply_post_production_enhancement(self, task: PostProductionTask) -> bool:
        """Mark every shot as color corrected or stabilized."""
        task = PostProductionTask(task)
        if task == PostProductionTask.VFX:
            raise ValueError("Use suggest_beat_synced_vfx for the vfx pass")
        storyboard = self.state.storyboard
        if storyboard is None:
            return False

        await self._store.dispatch(SetPostProductionStatus(task, TaskStatus.PROCESSING))
        flag = "color_corrected" if task == PostProductionTask.COLOR else "stabilized"
        for _, _, shot in storyboard.iter_shots():
            enhancements = shot.post_production_enhancements.model_copy(update={flag: True})
            await self._store.dispatch(
                PatchShot(shot.id, {"post_production_enhancements": enhancements.model_dump()})
            )
        await self._store.dispatch(SetPostProductionStatus(task, TaskStatus.DONE))
        return True

    async def suggest_beat_synced_vfx(self) -> Dict[str, str]:
        """Apply effects suggested for the song's high-energy moments."""
        state = self.state
        if state.song_analysis is None or state.storyboard is None:
            return {}

        await self._store.dispatch(SetPostProductionStatus(PostProductionTask.VFX, TaskStatus.PROCESSING))
        try:
            suggestions, usage = await call_blocking(
                self._creative.suggest_vfx, state.song_analysis, state.storyboard, state.model_tier
            )
        except Exception as e:
            await self._fail(_error_message(e, "Failed to get VFX suggestions."))
            await self._store.dispatch(SetPostProductionStatus(PostProductionTask.VFX, TaskStatus.IDLE))
            return {}

        for shot_id, vfx in suggestions.items():
            await self._store.dispatch(PatchShot(shot_id, {"vfx": vfx}))
        await self._add_usage("post_production", usage)
        await self._store.dispatch(SetPostProductionStatus(PostProductionTask.VFX, TaskStatus.DONE))
        return dict(suggestions)

    # Review

    async def go_to_review(self) -> bool:
        """Enter the review stage and run the executive and visual reviews."""
        if self.state.storyboard is None:
            return False
        await self._store.dispatch(StartReview())
        await asyncio.gather(self._run_executive_review(), self.run_visual_qa_review())
        return True

    async def _run_executive_review(self) -> None:
        state = self.state
        if state.storyboard is None or state.bibles is None:
            return
        try:
            feedback, usage = await call_blocking(
                self._reviewer.executive_review,
                state.storyboard,
                state.bibles,
                state.creative_brief,
                state.model_tier,
            )
        except Exception as e:
            await self._fail(_error_message(e, "Failed to get executive producer feedback."))
            await self._store.dispatch(SetExecutiveFeedback(FALLBACK_EXECUTIVE_FEEDBACK))
            return
        await self._store.dispatch(SetExecutiveFeedback(feedback))
        await self._add_usage("executive_review", usage)

    async def run_visual_qa_review(self) -> bool:
        """Review generated stills and clips for continuity.

        Skipped (report None) when no shot has a usable image or clip.

        Returns:
            True if a report was stored.
        """
        state = self.state
        storyboard = state.storyboard
        has_assets = storyboard is not None and any(
            shot.clip_url or shot.has_ready_image for _, _, shot in storyboard.iter_shots()
        )
        if state.bibles is None or not has_assets:
            await self._store.dispatch(SetVisualReport(None))
            return False

        await self._store.dispatch(StartVisualReview())
        try:
            report, usage = await call_blocking(
                self._reviewer.visual_review, storyboard, state.bibles, state.creative_brief, state.model_tier
            )
        except Exception as e:
            await self._fail(_error_message(e, "Visual QA agent failed to review generated visuals."))
            await self._store.dispatch(SetVisualReport(None))
            return False
        await self._store.dispatch(SetVisualReport(report))
        await self._add_usage("visual_review", usage)
        return True

    # Project files

    async def restart(self) -> ProjectState:
        """Drop the project and start over."""
        return await self._store.dispatch(ReplaceState(ProjectState()))

    async def load_snapshot(self, source: Union[Path, str, bytes, Mapping[str, Any]]) -> Optional[LoadedSnapshot]:
        """Replace the project with a saved one.

        Args:
            source: Path to a snapshot file, or the snapshot document itself.

        Returns:
            The loaded snapshot, or None if it could not be read.
        """
        try:
            if isinstance(source, Path):
                loaded = read_snapshot(source)
            else:
                loaded = load_snapshot(source)
        except (OSError, SnapshotError) as e:
            await self._fail(_error_message(e, "Invalid or corrupt production file."))
            return None

        for warning in loaded.warnings:
            logger.warning(f"Snapshot: {warning}")
        if loaded.audio_missing:
            logger.warning("Snapshot has no usable audio; upload the original song again for lip-sync")
        await self._store.dispatch(ReplaceState(loaded.state))
        return loaded

    async def save_snapshot(self, path: Path) -> Path:
        """Write the current project to `path` (YAML for .yaml/.yml, JSON otherwise)."""
        await self._store.drain()
        write_snapshot(self.state, path)
        logger.info(f"Saved project to {path}")
        return path
