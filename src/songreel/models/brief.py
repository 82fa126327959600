"""Creative brief model."""

from typing import List
from pydantic import BaseModel, Field


class CreativeBrief(BaseModel):
    """User-editable creative direction for the video."""

    feel: str = Field(default="", description="Overall feel of the video")
    style: str = Field(default="", description="Visual style")
    mood: List[str] = Field(default_factory=list, description="Mood keywords")
    video_type: str = Field(default="Story Narrative", description="Performance, Story Narrative, ...")
    lyrics_overlay: bool = Field(default=True, description="Burn lyrics into shots")
    user_notes: str = Field(default="", description="Free-form notes for the director")
    color_palette: List[str] = Field(default_factory=list, description="Hex colors")

    class Config:
        """Pydantic config."""
        frozen = True

    def merged(self, changes: dict) -> "CreativeBrief":
        """Return a copy with the given fields replaced (shallow merge)."""
        data = self.model_dump()
        data.update({key: value for key, value in changes.items() if key in type(self).model_fields})
        return type(self).model_validate(data)
