"""Google Imagen API client wrapper via Vertex AI."""

import logging
from typing import Optional

import google.auth
import google.auth.transport.requests
import requests

from ..config import config
from ..models import Bibles, CharacterBible, CreativeBrief, LocationBible, ModelTier, Shot
from ..prompts import character_image_prompt, location_image_prompt, shot_image_prompt
from .base import Generated

logger = logging.getLogger(__name__)

# Usage charged per generated or edited still.
IMAGE_USAGE = 500


class ImagenError(RuntimeError):
    """Imagen returned an error or no image."""


class ImagenClient:
    """Client wrapper for Google Imagen image generation via Vertex AI."""

    DEFAULT_LOCATION = "us-central1"
    EDIT_MODEL = "imagen-3.0-capability-001"

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: str = DEFAULT_LOCATION,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Imagen client.

        Args:
            project_id: Google Cloud project ID.
            location: GCP region for Vertex AI.
            model: Imagen model name.
            timeout: HTTP timeout in seconds. Defaults to config.request_timeout.
        """
        self._project_id = project_id or config.google_cloud_project
        self._location = location
        self._model = model or config.imagen_model
        self._timeout = timeout or config.request_timeout

        if not self._project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT not set")

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def model(self) -> str:
        return self._model

    def _endpoint(self, model: str) -> str:
        return (
            f"https://{self._location}-aiplatform.googleapis.com/v1/"
            f"projects/{self._project_id}/locations/{self._location}/"
            f"publishers/google/models/{model}:predict"
        )

    def _headers(self) -> dict:
        scopes = ["https://www.googleapis.com/auth/cloud-platform"]
        credentials, _ = google.auth.default(scopes=scopes)
        credentials.refresh(google.auth.transport.requests.Request())
        return {
            "Authorization": f"Bearer {credentials.token}",
            "Content-Type": "application/json",
        }

    def _predict(self, model: str, request_body: dict) -> str:
        response = requests.post(
            self._endpoint(model),
            json=request_body,
            headers=self._headers(),
            timeout=self._timeout,
        )
        if response.status_code != 200:
            error_msg = f"{response.status_code}: {response.text[:500]}"
            logger.error(f"Imagen API error: {error_msg}")
            raise ImagenError(f"Imagen API error {error_msg}")

        predictions = response.json().get("predictions", [])
        if not predictions:
            raise ImagenError("No predictions in response")

        prediction = predictions[0]
        image_data = prediction.get("bytesBase64Encoded")
        if not image_data:
            raise ImagenError("No image data in response")

        mime_type = prediction.get("mimeType", "image/png")
        return f"data:{mime_type};base64,{image_data}"

    def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        negative_prompt: Optional[str] = None,
    ) -> str:
        """Generate an image from a text prompt.

        Args:
            prompt: Text description of the image to generate.
            aspect_ratio: Image aspect ratio ('1:1', '16:9', '9:16', '4:3', '3:4').
            negative_prompt: Things to avoid in the image.

        Returns:
            The image as a data URL.

        Raises:
            ImagenError: If the API returns an error or no image.
        """
        request_body = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": aspect_ratio,
            },
        }
        if negative_prompt:
            request_body["parameters"]["negativePrompt"] = negative_prompt

        logger.info(f"Generating image with Imagen: {prompt[:50]}...")
        return self._predict(self._model, request_body)

    def edit_image(self, image_url: str, instruction: str) -> str:
        """Edit an image (given as a data URL) following a text instruction."""
        if not image_url.startswith("data:") or "," not in image_url:
            raise ImagenError("Only data: URLs can be edited")
        encoded = image_url.split(",", 1)[1]
        request_body = {
            "instances": [
                {
                    "prompt": instruction,
                    "referenceImages": [
                        {
                            "referenceType": "REFERENCE_TYPE_RAW",
                            "referenceId": 1,
                            "referenceImage": {"bytesBase64Encoded": encoded},
                        }
                    ],
                }
            ],
            "parameters": {"sampleCount": 1},
        }
        logger.info(f"Editing image with Imagen: {instruction[:50]}...")
        return self._predict(self.EDIT_MODEL, request_body)


class ImagenImageGenerator:
    """Still generator for bibles and shots backed by Imagen."""

    def __init__(self, client: Optional[ImagenClient] = None) -> None:
        self._client = client or ImagenClient()

    def generate_character_image(
        self, character: CharacterBible, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        url = self._client.generate_image(character_image_prompt(character, brief), aspect_ratio="1:1")
        return Generated(url, IMAGE_USAGE)

    def generate_location_image(
        self, location: LocationBible, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        url = self._client.generate_image(location_image_prompt(location, brief), aspect_ratio="16:9")
        return Generated(url, IMAGE_USAGE)

    def generate_shot_image(
        self, shot: Shot, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[str]:
        url = self._client.generate_image(shot_image_prompt(shot, bibles, brief), aspect_ratio="16:9")
        return Generated(url, IMAGE_USAGE)

    def edit_shot_image(self, image_url: str, instruction: str, tier: ModelTier) -> Generated[str]:
        return Generated(self._client.edit_image(image_url, instruction), IMAGE_USAGE)
