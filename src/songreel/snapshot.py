"""Saving and loading project snapshots.

A snapshot is a plain document (JSON or YAML) holding enough of the project
state to resume work later:

    stage, gender, modelTier, songAnalysis, creativeBrief, bibles,
    storyboard, tokenUsage, audio{name, mimeType, encodedData}

plus the optional `audioUrl`, `postProduction` and `review` entries. Loading
never trusts the document's shape: every field is validated on its own and
falls back to its default when it is missing or malformed.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from .models import (
    Bibles,
    CharacterBible,
    CreativeBrief,
    ExecutiveFeedback,
    LocationBible,
    ModelTier,
    PostProductionStatus,
    ProjectState,
    ReviewState,
    Scene,
    Shot,
    SingerGender,
    SongAnalysis,
    SongFile,
    Stage,
    Storyboard,
    TokenUsage,
    Transition,
)
from .state_machine import normalize_transitions

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

YAML_SUFFIXES = (".yaml", ".yml")


class SnapshotError(ValueError):
    """The document could not be read as a snapshot at all."""


@dataclass
class LoadedSnapshot:
    """Result of loading a snapshot."""

    state: ProjectState
    warnings: List[str] = field(default_factory=list)
    audio_missing: bool = False


def dump_snapshot(state: ProjectState) -> Dict[str, Any]:
    """Build the snapshot document for a project state.

    Args:
        state: State to save.

    Returns:
        A JSON/YAML-serializable dict.
    """
    document: Dict[str, Any] = {
        "stage": state.stage.value,
        "gender": state.singer_gender.value,
        "modelTier": state.model_tier.value,
        "songAnalysis": _dump(state.song_analysis),
        "creativeBrief": _dump(state.creative_brief),
        "bibles": _dump(state.bibles),
        "storyboard": _dump(state.storyboard),
        "tokenUsage": _dump(state.token_usage),
        "postProduction": _dump(state.post_production),
        "review": _dump(state.review),
    }
    if state.audio_url:
        document["audioUrl"] = state.audio_url
    if state.song is not None:
        document["audio"] = {
            "name": state.song.name,
            "mimeType": state.song.mime_type,
            "encodedData": base64.b64encode(state.song.data).decode("ascii"),
        }
    return document


def dumps_snapshot(state: ProjectState, fmt: str = "json") -> str:
    """Serialize a state to snapshot text ('json' or 'yaml')."""
    document = dump_snapshot(state)
    if fmt == "yaml":
        return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
    return json.dumps(document, indent=2)


def write_snapshot(state: ProjectState, path: Path) -> None:
    """Save a snapshot; `.yaml`/`.yml` files are written as YAML, others as JSON."""
    fmt = "yaml" if path.suffix.lower() in YAML_SUFFIXES else "json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(dumps_snapshot(state, fmt))
    logger.info(f"Saved snapshot to {path}")


def read_snapshot(path: Path) -> LoadedSnapshot:
    """Load a snapshot file.

    Raises:
        OSError: If the file cannot be read.
        SnapshotError: If the file is not a structured document.
    """
    with open(path, "r") as f:
        return load_snapshot(f.read())


def load_snapshot(document: Union[str, bytes, Mapping[str, Any]]) -> LoadedSnapshot:
    """Rebuild a project state from a snapshot document.

    Args:
        document: Snapshot text (JSON or YAML), bytes, or an already parsed mapping.

    Returns:
        LoadedSnapshot with the state, any field-level warnings, and whether
        the audio has to be supplied again.

    Raises:
        SnapshotError: If the document is not a mapping of fields.
    """
    data = _parse(document)
    warnings: List[str] = []

    analysis = _load_model(SongAnalysis, data.get("songAnalysis"), "songAnalysis", warnings)
    bibles = _load_bibles(data.get("bibles"), warnings)
    storyboard = _load_storyboard(data.get("storyboard"), warnings)
    song = _load_audio(data.get("audio"), warnings)

    state = ProjectState(
        stage=_load_stage(data.get("stage"), analysis, storyboard, warnings),
        song=song,
        audio_url=data.get("audioUrl") if isinstance(data.get("audioUrl"), str) else None,
        singer_gender=_load_enum(SingerGender, data.get("gender"), SingerGender.UNSPECIFIED, "gender", warnings),
        model_tier=_load_enum(ModelTier, data.get("modelTier"), ModelTier.FREEMIUM, "modelTier", warnings),
        song_analysis=analysis,
        creative_brief=_load_brief(data.get("creativeBrief"), warnings),
        bibles=bibles,
        storyboard=storyboard,
        token_usage=_load_token_usage(data.get("tokenUsage"), warnings),
        post_production=_load_model(
            PostProductionStatus, data.get("postProduction"), "postProduction", warnings
        ) or PostProductionStatus(),
        review=_load_model(ReviewState, data.get("review"), "review", warnings),
    )

    for warning in warnings:
        logger.warning(f"Snapshot: {warning}")
    if song is None:
        logger.warning("Snapshot has no usable audio; the song must be uploaded again")
    return LoadedSnapshot(state=state, warnings=warnings, audio_missing=song is None)


def _dump(model: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


def _parse(document: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(document, Mapping):
        return document
    if isinstance(document, bytes):
        try:
            document = document.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotError(f"Snapshot is not text: {e}") from e
    try:
        data = json.loads(document)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(document)
        except yaml.YAMLError as e:
            raise SnapshotError(f"Snapshot is not valid JSON or YAML: {e}") from e
    if not isinstance(data, Mapping):
        raise SnapshotError("Snapshot must be a mapping of fields")
    return data


def _load_model(
    model_cls: Type[ModelT], value: Any, name: str, warnings: List[str]
) -> Optional[ModelT]:
    if value is None:
        return None
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        warnings.append(f"dropped invalid {name} ({e.error_count()} errors)")
        return None


def _load_enum(enum_cls, value: Any, default, name: str, warnings: List[str]):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        warnings.append(f"unknown {name} {value!r}, using {default.value}")
        return default


def _load_stage(
    value: Any,
    analysis: Optional[SongAnalysis],
    storyboard: Optional[Storyboard],
    warnings: List[str],
) -> Stage:
    stage = _load_enum(Stage, value, Stage.UPLOAD, "stage", warnings)
    if stage == Stage.PLAN:
        # Planning cannot be resumed mid-flight.
        stage = Stage.CONTROLS
    if stage in (Stage.STORYBOARD, Stage.REVIEW) and storyboard is None:
        warnings.append(f"stage {stage.value} needs a storyboard")
        stage = Stage.CONTROLS
    if stage == Stage.CONTROLS and analysis is None:
        stage = Stage.UPLOAD
    return stage


def _load_brief(value: Any, warnings: List[str]) -> CreativeBrief:
    brief = CreativeBrief()
    if not isinstance(value, Mapping):
        return brief
    for key, item in value.items():
        try:
            brief = brief.merged({key: item})
        except ValidationError:
            warnings.append(f"ignored invalid creativeBrief.{key}")
    return brief


def _load_token_usage(value: Any, warnings: List[str]) -> TokenUsage:
    if not isinstance(value, Mapping):
        return TokenUsage()
    usage: Dict[str, Any] = {}
    for key, item in value.items():
        if isinstance(item, Mapping) or (isinstance(item, (int, float)) and not isinstance(item, bool)):
            usage[key] = item
        else:
            warnings.append(f"ignored invalid tokenUsage.{key}")
    try:
        return TokenUsage.model_validate(usage)
    except ValidationError:
        warnings.append("dropped invalid tokenUsage")
        return TokenUsage()


def _load_audio(value: Any, warnings: List[str]) -> Optional[SongFile]:
    if not isinstance(value, Mapping) or not value.get("encodedData"):
        return None
    encoded = str(value["encodedData"])
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        warnings.append(f"could not decode audio: {e}")
        return None
    return SongFile(
        name=str(value.get("name") or "song"),
        mime_type=str(value.get("mimeType") or "audio/mpeg"),
        data=data,
    )


def _load_bibles(value: Any, warnings: List[str]) -> Optional[Bibles]:
    if not isinstance(value, Mapping):
        return None
    characters, locations = value.get("characters"), value.get("locations")
    if not isinstance(characters, list) or not isinstance(locations, list):
        warnings.append("dropped bibles without character and location lists")
        return None
    return Bibles(
        characters=_load_items(CharacterBible, characters, "character", warnings),
        locations=_load_items(LocationBible, locations, "location", warnings),
    )


def _load_items(model_cls: Type[ModelT], values: list, name: str, warnings: List[str]) -> List[ModelT]:
    items: List[ModelT] = []
    for index, value in enumerate(values):
        if value is None:
            continue
        item = _load_model(model_cls, value, f"{name} #{index + 1}", warnings)
        if item is not None:
            items.append(item)
    return items


def _load_storyboard(value: Any, warnings: List[str]) -> Optional[Storyboard]:
    if not isinstance(value, Mapping):
        return None
    raw_scenes = value.get("scenes")
    if not isinstance(raw_scenes, list):
        warnings.append("dropped storyboard without a scene list")
        return None

    scenes: List[Scene] = []
    for index, raw_scene in enumerate(raw_scenes):
        if not isinstance(raw_scene, Mapping):
            continue
        scene = _load_scene(raw_scene, index, warnings)
        if scene is not None:
            scenes.append(scene)

    try:
        return Storyboard(
            id=str(value.get("id") or "storyboard"),
            title=str(value.get("title") or ""),
            artist=str(value.get("artist") or ""),
            scenes=scenes,
            executive_producer_feedback=_load_model(
                ExecutiveFeedback,
                value.get("executive_producer_feedback"),
                "executive_producer_feedback",
                warnings,
            ),
        )
    except ValidationError as e:
        warnings.append(f"dropped invalid storyboard ({e.error_count()} errors)")
        return None


def _load_scene(raw: Mapping[str, Any], index: int, warnings: List[str]) -> Optional[Scene]:
    raw_shots = raw.get("shots")
    shots = _load_items(Shot, raw_shots if isinstance(raw_shots, list) else [], "shot", warnings)

    raw_transitions = raw.get("transitions")
    transitions: List[Optional[Transition]] = []
    for item in raw_transitions if isinstance(raw_transitions, list) else []:
        transitions.append(
            _load_model(Transition, item, "transition", warnings) if isinstance(item, Mapping) else None
        )
    if transitions:
        transitions = normalize_transitions(transitions, len(shots))

    fields = {key: item for key, item in raw.items() if key not in ("shots", "transitions")}
    if not fields.get("id"):
        fields["id"] = f"scene_{index + 1}"
    try:
        return Scene.model_validate({**fields, "shots": shots, "transitions": transitions})
    except ValidationError as e:
        warnings.append(f"dropped invalid scene #{index + 1} ({e.error_count()} errors)")
        return None
