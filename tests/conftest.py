"""Test configuration helpers."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest


def _ensure_src_on_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    for entry in (src, root):
        entry_str = str(entry)
        if entry_str not in sys.path:
            sys.path.insert(0, entry_str)


_ensure_src_on_path()

from songreel.models import (  # noqa: E402
    Bibles,
    CharacterBible,
    ExecutiveFeedback,
    LocationBible,
    ProjectState,
    Scene,
    Shot,
    SongAnalysis,
    SongFile,
    Stage,
    Storyboard,
    Transition,
    VisualContinuityReport,
)
from songreel.models.song import Section  # noqa: E402
from songreel.poller import ClipRequest, ClipStatus  # noqa: E402
from songreel.services.base import Generated  # noqa: E402


async def no_sleep(seconds: float) -> None:
    """Sleep replacement that returns immediately."""


class SleepRecorder:
    """Awaitable sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_analysis(**overrides: Any) -> SongAnalysis:
    data = {
        "title": "Night Drive",
        "artist": "The Examples",
        "bpm": 120.0,
        "genre": "synthpop",
        "structure": [
            Section(name="verse_1", start=0.0, end=8.0),
            Section(name="chorus_1", start=8.0, end=16.0),
        ],
        "lyrics": "City lights are calling",
    }
    data.update(overrides)
    return SongAnalysis(**data)


def make_bibles() -> Bibles:
    return Bibles(
        characters=[CharacterBible(name="Mara", role_in_story="driver")],
        locations=[LocationBible(name="Neon Highway", setting_type="highway at night")],
    )


def make_shot(shot_id: str, start: float = 0.0, end: float = 4.0, **overrides: Any) -> Shot:
    data = {
        "id": shot_id,
        "start": start,
        "end": end,
        "subject": f"subject of {shot_id}",
        "character_refs": ["Mara"],
        "location_ref": "Neon Highway",
    }
    data.update(overrides)
    return Shot(**data)


def make_storyboard(*scenes_shots: List[Shot]) -> Storyboard:
    """Build a storyboard with one scene per list of shots."""
    if not scenes_shots:
        scenes_shots = (
            [make_shot("s1", 0, 4), make_shot("s2", 4, 8)],
            [make_shot("s3", 8, 12)],
        )
    scenes = [
        Scene(id=f"scene_{i + 1}", section=f"section_{i + 1}", shots=list(shots))
        for i, shots in enumerate(scenes_shots)
    ]
    return Storyboard(title="Night Drive", artist="The Examples", scenes=scenes)


def make_state(
    stage: Stage = Stage.STORYBOARD,
    storyboard: Optional[Storyboard] = None,
    with_storyboard: bool = True,
    **overrides: Any,
) -> ProjectState:
    data: Dict[str, Any] = {
        "stage": stage,
        "song": SongFile(name="song.mp3", data=b"ID3\x00audio-bytes\xff"),
        "song_analysis": make_analysis(),
        "bibles": make_bibles(),
        "storyboard": storyboard or (make_storyboard() if with_storyboard else None),
    }
    data.update(overrides)
    return ProjectState(**data)


def ready(shot: Shot, url: str = "data:image/png;base64,AAAA") -> Shot:
    return shot.model_copy(update={"preview_image_url": url})


class FakeAnalyzer:
    def __init__(self, analysis: Optional[SongAnalysis] = None, error: Optional[Exception] = None) -> None:
        self.analysis = analysis or make_analysis()
        self.error = error
        self.calls: List[tuple] = []

    def analyze_song(self, song, lyrics, title, artist, tier):
        self.calls.append((song.name, lyrics, title, artist, tier))
        if self.error:
            raise self.error
        return Generated(self.analysis, 1000)


class FakeCreative:
    """Creative generator whose results and failures are set per test."""

    def __init__(self) -> None:
        self.bibles = make_bibles()
        self.storyboard = make_storyboard()
        self.bibles_error: Optional[Exception] = None
        self.storyboard_error: Optional[Exception] = None
        self.transitions_error: Optional[Exception] = None
        self.suggestions: Dict[str, Any] = {"feel": "nocturnal", "style": "neo-noir", "user_notes": "rain"}
        self.moodboard: Dict[str, Any] = {"mood": ["moody"], "color_palette": ["#101020"]}
        self.vfx: Dict[str, str] = {"s3": "Lens Flare"}
        self.calls: List[str] = []

    def generate_bibles(self, analysis, brief, singer_gender, tier):
        self.calls.append("bibles")
        if self.bibles_error:
            raise self.bibles_error
        return Generated(self.bibles, 200)

    def generate_storyboard(self, analysis, brief, bibles, tier):
        self.calls.append("storyboard")
        if self.storyboard_error:
            raise self.storyboard_error
        return Generated(self.storyboard, 300)

    def generate_transitions(self, scene, bibles, brief, tier):
        self.calls.append(f"transitions:{scene.id}")
        if self.transitions_error:
            raise self.transitions_error
        transitions = [Transition(type="Crossfade", duration=0.5) for _ in scene.shots[:-1]]
        return Generated(transitions + [None], 10)

    def suggest_brief(self, analysis, brief, tier):
        self.calls.append("suggest")
        return Generated(dict(self.suggestions), 50)

    def analyze_moodboard(self, images, tier):
        self.calls.append("moodboard")
        return Generated(dict(self.moodboard), 40)

    def suggest_vfx(self, analysis, storyboard, tier):
        self.calls.append("vfx")
        return Generated(dict(self.vfx), 30)


class FakeReviewer:
    def __init__(self) -> None:
        self.executive_error: Optional[Exception] = None
        self.visual_error: Optional[Exception] = None
        self.visual_calls = 0

    def executive_review(self, storyboard, bibles, brief, tier):
        if self.executive_error:
            raise self.executive_error
        return Generated(
            ExecutiveFeedback(pacing_score=8, narrative_score=7, consistency_score=9, final_notes="Tight."),
            120,
        )

    def visual_review(self, storyboard, bibles, brief, tier):
        self.visual_calls += 1
        if self.visual_error:
            raise self.visual_error
        return Generated(VisualContinuityReport(summary="Consistent", overall_verdict="pass"), 90)


class FakeImages:
    """Image generator that fails for the ids listed in `failing`."""

    def __init__(self, failing: Optional[set] = None) -> None:
        self.failing = failing or set()
        self.shot_calls: List[str] = []
        self.bible_calls: List[str] = []
        self.edit_calls: List[tuple] = []
        self.edit_error: Optional[Exception] = None

    def _bible(self, entry):
        self.bible_calls.append(entry.id)
        if entry.id in self.failing:
            raise RuntimeError(f"quota exceeded for {entry.name}")
        return Generated(f"https://img.example/{entry.id}.png", 500)

    def generate_character_image(self, character, brief, tier):
        return self._bible(character)

    def generate_location_image(self, location, brief, tier):
        return self._bible(location)

    def generate_shot_image(self, shot, bibles, brief, tier):
        self.shot_calls.append(shot.id)
        if shot.id in self.failing:
            raise RuntimeError(f"image failed for {shot.id}")
        return Generated(f"https://img.example/{shot.id}.png", 500)

    def edit_shot_image(self, image_url, instruction, tier):
        self.edit_calls.append((image_url, instruction))
        if self.edit_error:
            raise self.edit_error
        return Generated("https://img.example/edited.png", 500)


class ScriptedBackend:
    """Clip backend answering status calls from a script.

    `script` maps the 1-based status call number to a `ClipStatus` or an
    exception; calls past the script return `default`.
    """

    def __init__(
        self,
        script: Optional[Dict[int, Any]] = None,
        default: Optional[ClipStatus] = None,
        submit_error: Optional[Exception] = None,
        on_status: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.script = script or {}
        self.default = default or ClipStatus(progress=10)
        self.submit_error = submit_error
        self.on_status = on_status
        self.submitted: List[ClipRequest] = []
        self.status_calls = 0
        self.uploads: List[str] = []
        self.upload_error: Optional[Exception] = None

    def submit(self, request: ClipRequest) -> str:
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(request)
        return f"job-{request.shot_id}"

    def status(self, job_id: str) -> ClipStatus:
        self.status_calls += 1
        if self.on_status:
            self.on_status(self.status_calls)
        result = self.script.get(self.status_calls, self.default)
        if isinstance(result, Exception):
            raise result
        return result

    def upload_audio(self, song: SongFile) -> str:
        if self.upload_error:
            raise self.upload_error
        self.uploads.append(song.name)
        return f"https://backend.example/audio/{song.name}"


@pytest.fixture
def creative() -> FakeCreative:
    return FakeCreative()


@pytest.fixture
def reviewer() -> FakeReviewer:
    return FakeReviewer()


@pytest.fixture
def images() -> FakeImages:
    return FakeImages()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend(default=ClipStatus(progress=100, success=True, result_url="https://clips.example/c.mp4"))
