"""HTTP client for the clip rendering backend."""

import logging
from typing import Optional

import requests

from ..config import config
from ..models import SongFile
from ..poller import ClipRequest, ClipStatus

logger = logging.getLogger(__name__)


class RenderBackendError(RuntimeError):
    """The render backend rejected a request or returned an unusable body."""


class RenderBackendClient:
    """Client for the render backend's clip and audio endpoints.

    Endpoints:
    - POST /api/comfyui/generate-video-clip -> {"promptId": ...}
    - GET /api/comfyui/video-status/{promptId} -> {success, clipUrl, progress, error}
    - POST /api/audio/upload (multipart field "audio") -> {"url": ...}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend root URL. Defaults to config.render_backend_url.
            timeout: Request timeout in seconds. Defaults to config.request_timeout.
            session: requests session to reuse.
        """
        self._base_url = (base_url or config.render_backend_url).rstrip("/")
        self._timeout = timeout or config.request_timeout
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _json(self, response: requests.Response, action: str) -> dict:
        if not response.ok:
            error_msg = f"{response.status_code}: {response.text[:500]}"
            logger.error(f"Render backend error while {action}: {error_msg}")
            raise RenderBackendError(f"Render backend error while {action}: {error_msg}")
        try:
            data = response.json()
        except ValueError as e:
            raise RenderBackendError(f"Render backend returned invalid JSON while {action}") from e
        if not isinstance(data, dict):
            raise RenderBackendError(f"Render backend returned an unexpected body while {action}")
        return data

    def submit(self, request: ClipRequest) -> str:
        """Start a clip job and return its prompt id."""
        logger.info(f"Submitting clip for shot {request.shot_id} ({request.quality})")
        response = self._session.post(
            f"{self._base_url}/api/comfyui/generate-video-clip",
            json=request.to_payload(),
            timeout=self._timeout,
        )
        data = self._json(response, "submitting a clip")
        prompt_id = data.get("promptId")
        if not prompt_id:
            raise RenderBackendError(data.get("error") or "Render backend returned no promptId")
        return str(prompt_id)

    def status(self, job_id: str) -> ClipStatus:
        """Fetch the current status of a clip job."""
        response = self._session.get(
            f"{self._base_url}/api/comfyui/video-status/{job_id}",
            timeout=self._timeout,
        )
        return ClipStatus.from_payload(self._json(response, "checking clip status"))

    def upload_audio(self, song: SongFile) -> str:
        """Upload the song so lip-synced clips can use it."""
        logger.info(f"Uploading audio {song.name} ({len(song.data)} bytes)")
        response = self._session.post(
            f"{self._base_url}/api/audio/upload",
            files={"audio": (song.name, song.data, song.mime_type)},
            timeout=self._timeout,
        )
        data = self._json(response, "uploading audio")
        url = data.get("url")
        if not url:
            raise RenderBackendError("Render backend returned no audio URL")
        return url
