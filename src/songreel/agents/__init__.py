"""Claude agents for analysis, planning and review."""

from .base import BaseAgent
from .director import DirectorAgent
from .reviewer import ReviewAgent

__all__ = ["BaseAgent", "DirectorAgent", "ReviewAgent"]
