"""Visual bible models: recurring characters and locations."""

import re
from typing import ClassVar, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, model_validator

# Value stored in an asset field when its generation failed.
ERROR_SENTINEL = "error"


class AssetStatus(str, Enum):
    """Lifecycle of a generated asset, derived from the asset field."""
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class BibleKind(str, Enum):
    """Which list of the bibles an entry lives in."""
    CHARACTER = "character"
    LOCATION = "location"


def slugify(value: str) -> str:
    """Lowercase a name and collapse everything but letters and digits to '-'."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "untitled"


def image_list_status(images: List[str]) -> AssetStatus:
    """Status of a bible entry's `source_images` list."""
    if not images:
        return AssetStatus.PENDING
    if images[0] == ERROR_SENTINEL:
        return AssetStatus.ERROR
    return AssetStatus.READY


class PhysicalAppearance(BaseModel):
    age_range: str = ""
    gender_presentation: str = ""
    ethnicity: str = ""
    body_type: str = ""
    key_facial_features: str = ""
    hair_style_and_color: str = ""
    eye_color: str = ""

    class Config:
        frozen = True


class Costuming(BaseModel):
    outfit_style: str = ""
    specific_clothing_items: List[str] = Field(default_factory=list)
    signature_props: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class Performance(BaseModel):
    emotional_arc: str = ""
    performance_style: str = ""
    gaze_direction: str = ""

    class Config:
        frozen = True


class CharacterLook(BaseModel):
    camera_lenses: str = ""
    lighting_style: str = ""
    color_dominants_in_shots: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class Atmosphere(BaseModel):
    time_of_day: str = ""
    weather: str = ""
    dominant_mood: str = ""

    class Config:
        frozen = True


class SettingDetails(BaseModel):
    style: str = ""
    key_features: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class SensoryDetails(BaseModel):
    textures: List[str] = Field(default_factory=list)
    environmental_effects: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


class LocationLook(BaseModel):
    lighting_style: str = ""
    color_palette: List[str] = Field(default_factory=list)
    camera_perspective: str = ""

    class Config:
        frozen = True


class _BibleEntry(BaseModel):
    """Fields shared by every bible entry.

    Entries are addressed by `id`. When the generator does not supply one, the
    id is derived from the entry kind and its name so that it is stable across
    snapshot save/load.
    """

    id: str = Field(default="", description="Stable identifier")
    name: str = Field(..., description="Display name")
    source_images: List[str] = Field(
        default_factory=list,
        description="[] while pending, [url] once ready, ['error'] after a failure",
    )

    kind: ClassVar[BibleKind] = BibleKind.CHARACTER

    class Config:
        """Pydantic config."""
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _derive_id(cls, data):
        if isinstance(data, dict) and not data.get("id") and data.get("name"):
            data = {**data, "id": f"{cls.kind.value}-{slugify(str(data['name']))}"}
        return data

    @property
    def image_status(self) -> AssetStatus:
        return image_list_status(self.source_images)


class CharacterBible(_BibleEntry):
    """Reference description of a recurring character."""

    kind: ClassVar[BibleKind] = BibleKind.CHARACTER

    role_in_story: str = ""
    physical_appearance: PhysicalAppearance = Field(default_factory=PhysicalAppearance)
    costuming_and_props: Costuming = Field(default_factory=Costuming)
    performance_and_demeanor: Performance = Field(default_factory=Performance)
    cinematic_style: CharacterLook = Field(default_factory=CharacterLook)


class LocationBible(_BibleEntry):
    """Reference description of a recurring location."""

    kind: ClassVar[BibleKind] = BibleKind.LOCATION

    setting_type: str = ""
    atmosphere_and_environment: Atmosphere = Field(default_factory=Atmosphere)
    architectural_and_natural_details: SettingDetails = Field(default_factory=SettingDetails)
    sensory_details: SensoryDetails = Field(default_factory=SensoryDetails)
    cinematic_style: LocationLook = Field(default_factory=LocationLook)


class Bibles(BaseModel):
    """All visual bibles of a project."""

    characters: List[CharacterBible] = Field(default_factory=list)
    locations: List[LocationBible] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True

    def entries(self, kind: BibleKind) -> List[_BibleEntry]:
        return list(self.characters if kind == BibleKind.CHARACTER else self.locations)

    def find(self, kind: BibleKind, entry_id: str) -> Optional[_BibleEntry]:
        """Return the entry with the given id, or None."""
        for entry in self.entries(kind):
            if entry.id == entry_id:
                return entry
        return None

    def with_images(self, kind: BibleKind, entry_id: str, images: List[str]) -> "Bibles":
        """Return a copy where one entry's `source_images` is replaced.

        Unknown ids leave the bibles unchanged.
        """
        if self.find(kind, entry_id) is None:
            return self
        updated = [
            entry.model_copy(update={"source_images": list(images)}) if entry.id == entry_id else entry
            for entry in self.entries(kind)
        ]
        field = "characters" if kind == BibleKind.CHARACTER else "locations"
        return self.model_copy(update={field: updated})
