"""Base agent abstraction."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..config import config
from ..models import ModelTier
from ..services.anthropic import AnthropicClient
from ..services.base import Generated

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Abstract base class for AI agents.

    Provides shared functionality for agents that use Claude for generation:
    model selection per model tier, message creation with the agent's system
    prompt, and JSON extraction from the reply.
    """

    def __init__(
        self,
        client: Optional[AnthropicClient] = None,
        model: Optional[str] = None,
        premium_model: Optional[str] = None,
    ) -> None:
        """Initialize the agent.

        Args:
            client: AnthropicClient instance. Created if not provided.
            model: Model for the freemium tier. Defaults to config.default_model.
            premium_model: Model for the premium tier. Defaults to config.premium_model.
        """
        self._model = model or config.default_model
        self._premium_model = premium_model or config.premium_model
        self._client = client or AnthropicClient(model=self._model)
        self._logger = logging.getLogger(f"{__name__}.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent's name."""
        ...

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """Return the system prompt for this agent."""
        ...

    @property
    def model(self) -> str:
        """Return the freemium model."""
        return self._model

    def model_for(self, tier: ModelTier) -> str:
        """Return the model used for a model tier."""
        return self._premium_model if tier == ModelTier.PREMIUM else self._model

    def _create_message(
        self,
        prompt: str,
        tier: ModelTier = ModelTier.FREEMIUM,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        images: Sequence[str] = (),
    ) -> Generated[str]:
        """Create a message using the agent's client and system prompt.

        Args:
            prompt: The user prompt to send.
            tier: Model tier selecting the Claude model.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature.
            images: Image URLs sent along with the prompt.

        Returns:
            The text of Claude's response and its token usage.
        """
        self._logger.debug(f"Creating message with prompt length: {len(prompt)}")

        try:
            response = self._client.create_message(
                prompt=prompt,
                max_tokens=max_tokens,
                system=self.system_prompt,
                temperature=temperature,
                model=self.model_for(tier),
                images=images,
            )
            self._logger.debug(f"Received response of length: {len(response.value)}")
            return response

        except Exception as e:
            self._logger.error(f"Error creating message: {e}")
            raise

    def _request_json(
        self,
        prompt: str,
        tier: ModelTier = ModelTier.FREEMIUM,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        images: Sequence[str] = (),
    ) -> Generated[Any]:
        """Send a prompt and parse the reply as JSON.

        Raises:
            ValueError: If the reply contains no valid JSON.
        """
        response = self._create_message(prompt, tier, max_tokens, temperature, images)
        json_str = self._extract_json(response.value)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            self._logger.error(f"Failed to parse JSON: {e}")
            self._logger.debug(f"Raw response: {response.value}")
            raise ValueError(f"Invalid JSON in response: {e}")
        return Generated(data, response.usage)

    def _extract_json(self, response: str) -> str:
        """Extract JSON from a response that may contain markdown or other text."""
        # Try to find JSON in code blocks
        if "```json" in response:
            start = response.find("```json") + 7
            end = response.find("```", start)
            if end > start:
                return response[start:end].strip()

        if "```" in response:
            start = response.find("```") + 3
            end = response.find("```", start)
            if end > start:
                return response[start:end].strip()

        # Take whichever of a raw object or array starts first
        starts = [(response.find(open_char), open_char, close_char) for open_char, close_char in (("{", "}"), ("[", "]"))]
        for start, start_char, end_char in sorted(s for s in starts if s[0] != -1):
            depth = 0
            for i, char in enumerate(response[start:], start):
                if char == start_char:
                    depth += 1
                elif char == end_char:
                    depth -= 1
                    if depth == 0:
                        return response[start:i + 1]

        # Return as-is if no JSON structure found
        return response.strip()
