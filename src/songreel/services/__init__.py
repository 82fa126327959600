"""External service integrations."""

from .anthropic import AnthropicClient
from .base import CreativeGenerator, Generated, ImageGenerator, Reviewer, SongAnalyzer

__all__ = [
    "AnthropicClient",
    "CreativeGenerator",
    "Generated",
    "ImageGenerator",
    "Reviewer",
    "SongAnalyzer",
]
