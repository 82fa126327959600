"""Tracking of long-running clip generation jobs.

A clip job finishes through one of two channels: the poll loop in
`ClipPoller.run`, or a push notification passed to `ClipPoller.handle_push`.
Whichever arrives first writes the clip; the state machine ignores the
second completion because the shot is no longer generating.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable

from .config import config
from .events import ClipCompleted, ClipFailed, ClipProgress, ClipStarted
from .models import SongFile
from .runner import call_blocking
from .store import ProjectStore

logger = logging.getLogger(__name__)


class ClipError(Exception):
    """Base class for clip generation failures."""

    def __init__(self, shot_id: str, message: str) -> None:
        super().__init__(message)
        self.shot_id = shot_id


class ShotNotReadyError(ClipError):
    """The shot has no usable still image, so no job may be submitted."""


class ClipInProgressError(ClipError):
    """A job for this shot is already being tracked."""


class ClipJobError(ClipError):
    """The backend reported a terminal error for the job."""


class ClipTimeoutError(ClipError):
    """The job did not finish within the polling budget."""


@dataclass(frozen=True)
class ClipRequest:
    """Everything the render backend needs to turn a still into a clip."""

    shot_id: str
    image_url: str
    prompt: str
    duration: float
    negative_prompt: Optional[str] = None
    quality: str = "draft"
    fps: Optional[int] = None
    camera_motion: str = "static"
    lip_sync: bool = False
    audio_url: Optional[str] = None
    workflow: Optional[str] = None
    video_model: Optional[str] = None
    render_profile: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Request body in the backend's wire format. None values are omitted."""
        payload = {
            "imageUrl": self.image_url,
            "prompt": self.prompt,
            "negative_prompt": self.negative_prompt,
            "duration": self.duration,
            "quality": self.quality,
            "fps": self.fps,
            "camera_motion": self.camera_motion,
            "lipSync": self.lip_sync,
            "audioUrl": self.audio_url,
            "shotId": self.shot_id,
            "workflow": self.workflow,
            "video_model": self.video_model,
            "render_profile": self.render_profile,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class ClipStatus:
    """One status report for a clip job."""

    progress: Optional[float] = None
    success: bool = False
    result_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.success and bool(self.result_url)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "ClipStatus":
        """Parse a status response body from the backend."""
        progress = data.get("progress")
        if isinstance(progress, bool) or not isinstance(progress, (int, float)):
            progress = None
        status = str(data.get("status") or "").lower()
        error = data.get("error")
        if not error and status in ("failed", "error"):
            error = f"Clip job {status}"
        return cls(
            progress=progress,
            success=bool(data.get("success")),
            result_url=data.get("clipUrl") or data.get("url") or None,
            error=str(error) if error else None,
        )


@dataclass(frozen=True)
class PushNotification:
    """Completion pushed by the backend instead of being polled."""

    result_url: str
    job_id: Optional[str] = None
    shot_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "PushNotification":
        """Parse a `video_generated` event payload.

        Raises:
            ValueError: If the payload has no URL or no job/shot identifier.
        """
        url = data.get("url") or data.get("clipUrl")
        job_id = data.get("promptId") or data.get("id")
        shot_id = data.get("shotId")
        if not url:
            raise ValueError("Push notification has no clip URL")
        if not job_id and not shot_id:
            raise ValueError("Push notification has no job or shot identifier")
        return cls(result_url=url, job_id=job_id, shot_id=shot_id)


@runtime_checkable
class ClipBackend(Protocol):
    """Render backend that turns stills into clips."""

    def submit(self, request: ClipRequest) -> str:
        """Start a clip job and return its identifier."""
        ...

    def status(self, job_id: str) -> ClipStatus:
        ...

    def upload_audio(self, song: SongFile) -> str:
        """Upload the song and return a URL the backend can read it from."""
        ...


@dataclass
class _ActiveJob:
    shot_id: str
    job_id: Optional[str] = None
    result_url: Optional[str] = None
    done: asyncio.Event = field(default_factory=asyncio.Event)


class ClipPoller:
    """Submits clip jobs and follows them to completion.

    At most one job per shot is tracked at a time. Progress and completion
    are reported to the `ProjectStore` as events.
    """

    def __init__(
        self,
        backend: ClipBackend,
        store: ProjectStore,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            backend: Render backend client.
            store: Store receiving clip events.
            interval: Seconds between status checks. Defaults to config.clip_poll_interval.
            max_attempts: Status checks before giving up. Defaults to config.clip_poll_max_attempts.
            sleep: Awaitable sleep function (injected by tests).
        """
        self._backend = backend
        self._store = store
        self._interval = config.clip_poll_interval if interval is None else interval
        self._max_attempts = config.clip_poll_max_attempts if max_attempts is None else max_attempts
        self._sleep = sleep
        self._active: Dict[str, _ActiveJob] = {}

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def is_active(self, shot_id: str) -> bool:
        """Return True while a job for the shot is being tracked."""
        return shot_id in self._active

    async def run(self, request: ClipRequest) -> str:
        """Submit a clip job for a shot and wait for it to finish.

        Args:
            request: Clip request; `request.shot_id` names the shot.

        Returns:
            URL of the finished clip.

        Raises:
            ShotNotReadyError: The shot is unknown or its image is pending or failed.
            ClipInProgressError: A job for the shot is already running.
            ClipJobError: Submission failed or the backend reported an error.
            ClipTimeoutError: No completion within `max_attempts` checks.
        """
        shot_id = request.shot_id
        storyboard = self._store.state.storyboard
        shot = storyboard.find_shot(shot_id) if storyboard else None
        if shot is None or not shot.has_ready_image:
            raise ShotNotReadyError(shot_id, f"Shot {shot_id} has no ready image to animate")
        if shot_id in self._active:
            raise ClipInProgressError(shot_id, f"A clip for shot {shot_id} is already being generated")

        job = _ActiveJob(shot_id=shot_id)
        self._active[shot_id] = job
        try:
            await self._store.dispatch(ClipStarted(shot_id))
            try:
                job.job_id = await call_blocking(self._backend.submit, request)
            except Exception as e:
                raise ClipJobError(shot_id, f"Failed to submit clip for shot {shot_id}: {e}") from e
            logger.info(f"Submitted clip job {job.job_id} for shot {shot_id}")
            return await self._poll(job)
        except ClipError:
            await self._store.dispatch(ClipFailed(shot_id))
            raise
        finally:
            self._active.pop(shot_id, None)

    async def _poll(self, job: _ActiveJob) -> str:
        for attempt in range(1, self._max_attempts + 1):
            await self._sleep(self._interval)
            if job.done.is_set():
                logger.debug(f"Clip job {job.job_id} already completed by push")
                return job.result_url

            try:
                status = await call_blocking(self._backend.status, job.job_id)
            except Exception as e:
                logger.warning(
                    f"Error polling clip job {job.job_id} (attempt {attempt}/{self._max_attempts}): {e}"
                )
                continue

            if job.done.is_set():
                return job.result_url

            logger.debug(f"Clip job {job.job_id} attempt {attempt}: {status}")
            if status.progress is not None:
                await self._store.dispatch(ClipProgress(job.shot_id, status.progress))

            if status.completed:
                job.result_url = status.result_url
                job.done.set()
                await self._store.dispatch(ClipCompleted(job.shot_id, status.result_url))
                logger.info(f"Clip for shot {job.shot_id} ready: {status.result_url}")
                return status.result_url

            if status.error:
                raise ClipJobError(job.shot_id, status.error)

        raise ClipTimeoutError(
            job.shot_id,
            f"Video generation timed out after {self._max_attempts} attempts",
        )

    async def handle_push(self, notification: PushNotification) -> bool:
        """Apply a pushed completion to the job it belongs to.

        Notifications that match no tracked job (unknown, or already
        completed) are ignored.

        Returns:
            True if the notification completed a tracked job.
        """
        job = self._match(notification)
        if job is None or job.done.is_set():
            logger.debug(f"Ignoring push notification for {notification.job_id or notification.shot_id}")
            return False

        job.result_url = notification.result_url
        job.done.set()
        await self._store.dispatch(ClipCompleted(job.shot_id, notification.result_url))
        logger.info(f"Clip for shot {job.shot_id} ready via push: {notification.result_url}")
        return True

    def _match(self, notification: PushNotification) -> Optional[_ActiveJob]:
        if notification.job_id:
            for job in self._active.values():
                if job.job_id == notification.job_id:
                    return job
        if notification.shot_id:
            return self._active.get(notification.shot_id)
        return None
