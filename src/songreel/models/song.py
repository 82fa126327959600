"""Song input and analysis models."""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class SingerGender(str, Enum):
    """Gender of the lead vocalist, used to cast performers."""
    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"


class ModelTier(str, Enum):
    """Which class of generation models the project may use."""
    FREEMIUM = "freemium"
    PREMIUM = "premium"


class SongFile(BaseModel):
    """Raw audio supplied by the user."""

    name: str = Field(..., description="Original file name")
    mime_type: str = Field(default="audio/mpeg", description="MIME type of the audio")
    data: bytes = Field(..., description="Raw audio bytes")

    class Config:
        """Pydantic config."""
        frozen = True


class Section(BaseModel):
    """A structural section of the song (verse, chorus, ...)."""

    name: str = Field(..., description="Section label")
    start: float = Field(..., description="Start time in seconds", ge=0)
    end: float = Field(..., description="End time in seconds", ge=0)

    class Config:
        """Pydantic config."""
        frozen = True


class Beat(BaseModel):
    """A detected beat."""

    time: float = Field(..., description="Beat time in seconds", ge=0)
    energy: float = Field(default=0.5, description="Relative energy (0-1)")

    class Config:
        """Pydantic config."""
        frozen = True


class VocalSegment(BaseModel):
    start: float
    end: float

    class Config:
        frozen = True


class Vocalist(BaseModel):
    """One identified voice in the song."""

    id: str = Field(..., description="Vocalist identifier")
    display_name: str = Field(default="", description="Name shown to the user")
    gender: SingerGender = Field(default=SingerGender.UNSPECIFIED)
    role: str = Field(default="lead", description="lead, featured, backing...")
    segments: List[VocalSegment] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True


class Vocals(BaseModel):
    """Vocal layout of the song."""

    count: int = Field(default=1, ge=0)
    type: str = Field(default="solo", description="solo, duet, group or instrumental")
    duet_pairing: Optional[str] = Field(None, description="e.g. male-female")
    vocalists: List[Vocalist] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True


class LyricAnalysis(BaseModel):
    """Thematic reading of the lyrics."""

    primary_themes: List[str] = Field(default_factory=list)
    narrative_structure: str = ""
    imagery_style: str = ""
    emotional_arc: str = ""
    key_visual_elements: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True


class VideoTypeRecommendation(BaseModel):
    primary: str = "Story Narrative"
    alternatives: List[str] = Field(default_factory=list)
    reasoning: str = ""

    class Config:
        frozen = True


class SongAnalysis(BaseModel):
    """Structured analysis of a song, produced once per project."""

    title: str = Field(default="Untitled", description="Song title")
    artist: str = Field(default="Unknown Artist", description="Performing artist")
    bpm: float = Field(default=120.0, description="Tempo in beats per minute", gt=0)
    mood: List[str] = Field(default_factory=list, description="Mood keywords")
    genre: str = Field(default="", description="Genre label")
    instrumentation: List[str] = Field(default_factory=list)
    structure: List[Section] = Field(default_factory=list, description="Song sections in time order")
    beats: List[Beat] = Field(default_factory=list)
    lyrics: str = Field(default="", description="Lyrics as supplied by the user")
    vocals: Optional[Vocals] = None
    lyric_analysis: Optional[LyricAnalysis] = None
    recommended_video_types: Optional[VideoTypeRecommendation] = None

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def duration(self) -> float:
        """Length of the song according to its structure."""
        return max((section.end for section in self.structure), default=0.0)
