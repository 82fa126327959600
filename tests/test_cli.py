from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from conftest import (
    FakeAnalyzer,
    FakeCreative,
    FakeImages,
    FakeReviewer,
    ScriptedBackend,
    make_shot,
    make_state,
    make_storyboard,
    no_sleep,
    ready,
)

from songreel import __version__, cli
from songreel.config import config
from songreel.models import Stage
from songreel.poller import ClipPoller, ClipStatus
from songreel.production import Production
from songreel.runner import BatchRunner
from songreel.snapshot import read_snapshot, write_snapshot

runner = CliRunner()


@pytest.fixture
def fakes(monkeypatch):
    collaborators = SimpleNamespace(
        analyzer=FakeAnalyzer(),
        creative=FakeCreative(),
        reviewer=FakeReviewer(),
        images=FakeImages(),
        backend=ScriptedBackend(default=ClipStatus(progress=100, success=True, result_url="https://clips.example/c.mp4")),
    )

    def build(store):
        return Production(
            store,
            analyzer=collaborators.analyzer,
            creative=collaborators.creative,
            reviewer=collaborators.reviewer,
            images=collaborators.images,
            backend=collaborators.backend,
            runner=BatchRunner(delay=0, sleep=no_sleep),
            poller=ClipPoller(collaborators.backend, store, sleep=no_sleep),
        )

    monkeypatch.setattr(cli, "build_production", build)
    return collaborators


def _project(tmp_path, state=None):
    path = tmp_path / "project.json"
    if state is not None:
        write_snapshot(state, path)
    return path


def _controls_state():
    return make_state(stage=Stage.CONTROLS, bibles=None, with_storyboard=False)


def test_version():
    result = runner.invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_analyze_starts_a_project(tmp_path, fakes):
    audio = tmp_path / "night.mp3"
    audio.write_bytes(b"ID3\x00")
    lyrics = tmp_path / "lyrics.txt"
    lyrics.write_text("City lights are calling")
    project = _project(tmp_path)

    result = runner.invoke(cli.app, [
        "analyze", str(audio), "--lyrics", str(lyrics), "--title", "Night Drive", "-g", "female", "-p", str(project)
    ])

    assert result.exit_code == 0, result.output
    assert "Analysis saved" in result.output
    assert fakes.analyzer.calls == [("night.mp3", "City lights are calling", "Night Drive", "", "freemium")]
    state = read_snapshot(project).state
    assert state.stage == Stage.CONTROLS
    assert state.song.data == b"ID3\x00"
    assert state.audio_url == "https://backend.example/audio/night.mp3"


def test_brief_edits_fields_without_credentials(tmp_path):
    project = _project(tmp_path, _controls_state())

    result = runner.invoke(cli.app, [
        "brief", "feel=dreamy", "mood=calm, warm", "lyrics-overlay=no", "-p", str(project)
    ])

    assert result.exit_code == 0, result.output
    brief = read_snapshot(project).state.creative_brief
    assert brief.feel == "dreamy"
    assert brief.mood == ["calm", "warm"]
    assert brief.lyrics_overlay is False


def test_brief_rejects_unknown_fields(tmp_path):
    project = _project(tmp_path, _controls_state())

    result = runner.invoke(cli.app, ["brief", "budget=huge", "-p", str(project)])

    assert result.exit_code != 0
    assert read_snapshot(project).state.creative_brief.feel == ""


def test_brief_is_locked_after_planning(tmp_path):
    project = _project(tmp_path, make_state())

    result = runner.invoke(cli.app, ["brief", "feel=dreamy", "-p", str(project)])

    assert result.exit_code == 1
    assert "locked" in result.output


def test_plan_saves_storyboard_and_background_work(tmp_path, fakes):
    project = _project(tmp_path, _controls_state())

    result = runner.invoke(cli.app, ["plan", "-p", str(project)])

    assert result.exit_code == 0, result.output
    assert "Scenes: 2" in result.output
    state = read_snapshot(project).state
    assert state.stage == Stage.STORYBOARD
    assert state.bibles.characters[0].source_images == ["https://img.example/character-mara.png"]
    assert state.storyboard.scenes[0].transitions[0].type == "Crossfade"


def test_failed_plan_exits_with_error_and_keeps_progress(tmp_path, fakes):
    fakes.creative.storyboard_error = RuntimeError("model overloaded")
    project = _project(tmp_path, _controls_state())

    result = runner.invoke(cli.app, ["plan", "-p", str(project)])

    assert result.exit_code == 1
    assert "model overloaded" in result.output
    state = read_snapshot(project).state
    assert state.stage == Stage.CONTROLS
    assert state.bibles is not None


def test_plan_without_analysis(tmp_path, fakes):
    project = _project(tmp_path)

    result = runner.invoke(cli.app, ["plan", "-p", str(project)])

    assert result.exit_code == 1
    assert "songreel analyze" in result.output


def test_images_and_clips(tmp_path, fakes):
    project = _project(tmp_path, make_state())

    images = runner.invoke(cli.app, ["images", "-p", str(project)])
    clips = runner.invoke(cli.app, ["clips", "-p", str(project)])

    assert images.exit_code == 0, images.output
    assert "3/3 shots have images" in images.output
    assert clips.exit_code == 0, clips.output
    assert "3/3 shots have clips" in clips.output
    assert [request.quality for request in fakes.backend.submitted] == ["high", "high", "high"]


def test_review_prints_feedback(tmp_path, fakes):
    project = _project(tmp_path, make_state(storyboard=make_storyboard([ready(make_shot("s1"))])))

    result = runner.invoke(cli.app, ["review", "-p", str(project)])

    assert result.exit_code == 0, result.output
    assert "Notes: Tight." in result.output
    assert "Visual QA: pass" in result.output
    assert read_snapshot(project).state.stage == Stage.REVIEW


def test_missing_credentials_are_reported(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "anthropic_api_key", "")
    project = _project(tmp_path, _controls_state())

    result = runner.invoke(cli.app, ["suggest", "-p", str(project)])

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_status_is_read_only(tmp_path):
    storyboard = make_storyboard(
        [ready(make_shot("s1")), make_shot("s2", 4, 8, preview_image_url="error")],
    )
    project = _project(tmp_path, make_state(storyboard=storyboard))
    before = project.read_text()

    result = runner.invoke(cli.app, ["status", "-p", str(project)])

    assert result.exit_code == 0, result.output
    assert "Stage: storyboard" in result.output
    assert "✅ s1" in result.output
    assert "❌ s2" in result.output
    assert project.read_text() == before


def test_status_without_project(tmp_path):
    result = runner.invoke(cli.app, ["status", "-p", str(tmp_path / "missing.json")])

    assert result.exit_code == 1
    assert "No project found" in result.output
