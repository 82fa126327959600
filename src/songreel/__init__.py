"""Songreel: turn a song into a storyboarded, generated music video."""

__version__ = "0.1.0"
