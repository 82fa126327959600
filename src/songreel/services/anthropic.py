"""Anthropic Claude API client wrapper."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from anthropic import (
    Anthropic,
    APIConnectionError,
    APIError,
    InternalServerError,
    RateLimitError,
)

from ..config import config
from .base import Generated

logger = logging.getLogger(__name__)

# Failures worth another attempt; everything else is raised immediately.
RETRYABLE_ERRORS = (RateLimitError, APIConnectionError, InternalServerError)


def image_block(url: str) -> Dict[str, Any]:
    """Build an image content block from a data URL or a plain URL."""
    if url.startswith("data:") and "," in url:
        header, data = url.split(",", 1)
        media_type = header[5:].split(";", 1)[0] or "image/jpeg"
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": data},
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def build_messages(prompt: str, images: Sequence[str] = ()) -> List[Dict[str, Any]]:
    """Single user turn with the images first and the prompt text last."""
    content: List[Dict[str, Any]] = [image_block(url) for url in images]
    content.append({"type": "text", "text": prompt})
    return [{"role": "user", "content": content}]


def usage_tokens(response: Any) -> int:
    """Input plus output tokens of a response, 0 when usage is not reported."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0
    return (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)


class AnthropicClient:
    """Claude messages client returning text together with its token cost.

    Rate limits, connection failures and server errors are retried with
    exponential backoff; other API errors are raised at once.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            model: Default model. Defaults to config.default_model.
            max_retries: Attempts per request, including the first one.
            retry_delay: Base delay between retries in seconds (doubled per attempt).
        """
        self._api_key = api_key or config.anthropic_api_key
        if not self._api_key:
            raise ValueError(
                "Anthropic API key not provided. Set ANTHROPIC_API_KEY env var."
            )

        self._client = Anthropic(api_key=self._api_key)
        self._model = model or config.default_model
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        """Return the default model."""
        return self._model

    def create_message(
        self,
        prompt: str,
        max_tokens: int = 4096,
        system: Optional[str] = None,
        temperature: float = 0.7,
        model: Optional[str] = None,
        images: Sequence[str] = (),
    ) -> Generated[str]:
        """Send one user turn to Claude.

        Args:
            prompt: The user prompt to send.
            max_tokens: Maximum tokens in the response.
            system: Optional system prompt.
            temperature: Sampling temperature (0.0-1.0).
            model: Override the client's default model for this request.
            images: Image URLs (data: or http) sent before the prompt.

        Returns:
            The concatenated text blocks of the reply and the tokens consumed.

        Raises:
            APIError: If the request fails for good.
        """
        request: Dict[str, Any] = {
            "model": model or self._model,
            "max_tokens": max_tokens,
            "messages": build_messages(prompt, images),
            "temperature": temperature,
        }
        if system:
            request["system"] = system

        for attempt in range(self._max_retries):
            logger.debug(
                f"Sending request to {request['model']} "
                f"(attempt {attempt + 1}/{self._max_retries}, {len(images)} images)"
            )
            try:
                response = self._client.messages.create(**request)
            except RETRYABLE_ERRORS as e:
                if attempt == self._max_retries - 1:
                    logger.error(f"Claude request failed after {self._max_retries} attempts: {e}")
                    raise
                delay = self._retry_delay * (2**attempt)
                logger.warning(f"{type(e).__name__}: {e}. Retrying in {delay:.1f}s...")
                time.sleep(delay)
                continue
            except APIError as e:
                logger.error(f"API error: {e}")
                raise

            if getattr(response, "stop_reason", None) == "max_tokens":
                logger.warning(f"Reply truncated at {max_tokens} tokens")
            text = "".join(
                block.text for block in response.content if getattr(block, "text", None)
            )
            return Generated(text, usage_tokens(response))

        raise RuntimeError("Max retries exceeded")
