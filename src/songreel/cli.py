"""CLI entry point for the songreel pipeline."""

import asyncio
import logging
import mimetypes
import typer
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional
from enum import Enum

from . import __version__
from .config import config
from .events import UpdateCreativeBrief
from .models import AssetStatus, ModelTier, ProjectState, SingerGender, SongFile
from .production import Production
from .snapshot import SnapshotError, read_snapshot, write_snapshot
from .store import ProjectStore

app = typer.Typer(
    name="songreel",
    help="AI-powered music video production from a single song",
    no_args_is_help=True
)

DEFAULT_PROJECT = Path("project.json")

# Brief fields given as comma separated lists on the command line.
LIST_FIELDS = ("mood", "color_palette")
BOOL_FIELDS = ("lyrics_overlay",)


class ClipQuality(str, Enum):
    """Clip render quality."""
    DRAFT = "draft"
    HIGH = "high"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"songreel version {__version__}")
        raise typer.Exit()


def build_production(store: ProjectStore) -> Production:
    """Wire the Claude, Imagen and render backend collaborators.

    Raises:
        ValueError: If required credentials are not configured.
    """
    from .agents import DirectorAgent, ReviewAgent
    from .services.anthropic import AnthropicClient
    from .services.imagen import ImagenImageGenerator
    from .services.render_backend import RenderBackendClient

    config.validate_required()
    config.validate_imagen_required()
    client = AnthropicClient()
    director = DirectorAgent(client=client)
    return Production(
        store,
        analyzer=director,
        creative=director,
        reviewer=ReviewAgent(client=client),
        images=ImagenImageGenerator(),
        backend=RenderBackendClient(),
    )


def _load_state(project: Path) -> ProjectState:
    if not project.exists():
        return ProjectState()
    loaded = read_snapshot(project)
    for warning in loaded.warnings:
        typer.echo(f"⚠️  {warning}")
    if loaded.audio_missing and loaded.state.song_analysis is not None:
        typer.echo("⚠️  Project has no audio; lip-sync clips will be rendered without it")
    return loaded.state


def _run(
    project: Path,
    operation: Callable[[Production], Awaitable[Any]],
    fresh: bool = False,
) -> ProjectState:
    """Run one pipeline operation against a project file.

    The project is saved after the operation, also when it failed, and the
    command exits with status 1 if the operation left an error behind.
    """
    try:
        state = ProjectState() if fresh else _load_state(project)
    except (OSError, SnapshotError) as e:
        typer.echo(f"❌ Error loading project: {e}")
        raise typer.Exit(1)

    async def main() -> ProjectState:
        async with ProjectStore(state) as store:
            production = build_production(store)
            try:
                await production.clear_api_error()
                await operation(production)
                await production.wait_for_background()
            finally:
                await production.save_snapshot(project)
            return production.state

    try:
        final = asyncio.run(main())
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    if final.api_error:
        typer.echo(f"❌ {final.api_error}")
        typer.echo(f"   Progress saved to {project}")
        raise typer.Exit(1)
    return final


def _parse_brief_changes(assignments: List[str]) -> Dict[str, Any]:
    from .models import CreativeBrief

    changes: Dict[str, Any] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        key = key.strip().replace("-", "_")
        if not sep or key not in CreativeBrief.model_fields:
            raise typer.BadParameter(f"Expected FIELD=VALUE with a brief field, got '{assignment}'")
        if key in LIST_FIELDS:
            changes[key] = [item.strip() for item in value.split(",") if item.strip()]
        elif key in BOOL_FIELDS:
            changes[key] = value.strip().lower() in ("1", "true", "yes", "on")
        else:
            changes[key] = value
    return changes


ProjectOption = typer.Option(
    DEFAULT_PROJECT,
    "--project",
    "-p",
    help="Project snapshot file (.json, .yaml or .yml)",
    file_okay=True,
    dir_okay=False
)

VerboseOption = typer.Option(
    False,
    "--verbose",
    help="Enable verbose logging"
)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """songreel - Turn a song into a storyboarded, rendered music video."""
    pass


@app.command()
def analyze(
    audio: Path = typer.Argument(
        ...,
        help="Audio file of the song",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    lyrics: Path = typer.Option(
        ...,
        "--lyrics",
        "-l",
        help="Text file with the song lyrics",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    title: str = typer.Option("", "--title", help="Song title"),
    artist: str = typer.Option("", "--artist", help="Artist name"),
    gender: SingerGender = typer.Option(
        SingerGender.UNSPECIFIED,
        "--gender",
        "-g",
        help="Gender of the lead vocalist"
    ),
    tier: ModelTier = typer.Option(
        ModelTier.FREEMIUM,
        "--tier",
        "-t",
        help="Model tier"
    ),
    project: Path = ProjectOption,
    verbose: bool = VerboseOption,
) -> None:
    """Start a new project by analyzing a song."""
    setup_logging(verbose)
    typer.echo(f"🎵 Analyzing: {audio.name}")

    mime_type = mimetypes.guess_type(audio.name)[0] or "audio/mpeg"
    song = SongFile(name=audio.name, mime_type=mime_type, data=audio.read_bytes())
    lyrics_text = lyrics.read_text()

    state = _run(
        project,
        lambda production: production.process_song_upload(
            song, lyrics_text, title, artist, gender, tier
        ),
        fresh=True,
    )

    analysis = state.song_analysis
    typer.echo(f"\n✅ Analysis saved: {project}")
    typer.echo(f"   Title: {analysis.title} by {analysis.artist}")
    typer.echo(f"   Genre: {analysis.genre or 'unknown'}, {analysis.bpm:.0f} BPM")
    typer.echo(f"   Duration: {analysis.duration:.1f}s in {len(analysis.structure)} sections")
    if state.audio_url is None:
        typer.echo("⚠️  Audio upload failed; lip-sync clips will be rendered without audio")


@app.command()
def brief(
    assignments: List[str] = typer.Argument(
        ...,
        help="Brief fields as FIELD=VALUE (mood and color_palette take comma separated lists)"
    ),
    project: Path = ProjectOption,
) -> None:
    """Edit the creative brief before planning."""
    changes = _parse_brief_changes(assignments)
    try:
        state = _load_state(project)
    except (OSError, SnapshotError) as e:
        typer.echo(f"❌ Error loading project: {e}")
        raise typer.Exit(1)

    if state.storyboard is not None:
        typer.echo("❌ The brief is locked once a storyboard exists")
        raise typer.Exit(1)

    async def update() -> ProjectState:
        async with ProjectStore(state) as store:
            return await store.dispatch(UpdateCreativeBrief(changes))

    updated = asyncio.run(update())
    if updated.creative_brief == state.creative_brief and changes:
        typer.echo("❌ Brief update rejected; check the field values")
        raise typer.Exit(1)
    write_snapshot(updated, project)

    typer.echo(f"✅ Brief updated: {project}")
    for key, value in updated.creative_brief.model_dump().items():
        typer.echo(f"   {key}: {value}")


@app.command()
def suggest(project: Path = ProjectOption, verbose: bool = VerboseOption) -> None:
    """Ask the AI director to complete the creative brief."""
    setup_logging(verbose)
    typer.echo("🎬 Asking the director for suggestions...")
    state = _run(project, lambda production: production.get_director_suggestions())
    if state.song_analysis is None:
        typer.echo("❌ No song analysis yet; run 'songreel analyze' first")
        raise typer.Exit(1)

    creative_brief = state.creative_brief
    typer.echo(f"\n✅ Brief updated: {project}")
    typer.echo(f"   Feel: {creative_brief.feel}")
    typer.echo(f"   Style: {creative_brief.style}")
    if creative_brief.user_notes:
        typer.echo(f"   Notes: {creative_brief.user_notes}")


@app.command()
def plan(project: Path = ProjectOption, verbose: bool = VerboseOption) -> None:
    """Generate bibles, bible images, the storyboard and transitions."""
    setup_logging(verbose)
    typer.echo("📋 Planning the video...")
    state = _run(project, lambda production: production.generate_creative_assets())
    if state.storyboard is None:
        typer.echo("❌ No song analysis yet; run 'songreel analyze' first")
        raise typer.Exit(1)

    typer.echo(f"\n✅ Storyboard saved: {project}")
    typer.echo(f"   Characters: {', '.join(c.name for c in state.bibles.characters) or 'none'}")
    typer.echo(f"   Locations: {', '.join(l.name for l in state.bibles.locations) or 'none'}")
    typer.echo(f"   Scenes: {len(state.storyboard.scenes)}")
    typer.echo(f"   Shots: {sum(1 for _ in state.storyboard.iter_shots())}")


@app.command()
def images(project: Path = ProjectOption, verbose: bool = VerboseOption) -> None:
    """Generate stills for all shots that do not have one yet."""
    setup_logging(verbose)
    typer.echo("🎨 Generating shot images...")
    state = _run(project, lambda production: production.generate_all_images())

    shots = [shot for _, _, shot in state.storyboard.iter_shots()] if state.storyboard else []
    ready = sum(1 for shot in shots if shot.has_ready_image)
    typer.echo(f"\n✅ {ready}/{len(shots)} shots have images")


@app.command()
def clips(
    quality: ClipQuality = typer.Option(
        ClipQuality.HIGH,
        "--quality",
        "-q",
        help="Clip render quality"
    ),
    project: Path = ProjectOption,
    verbose: bool = VerboseOption,
) -> None:
    """Render clips for every shot with an image."""
    setup_logging(verbose)
    typer.echo(f"📽️  Rendering clips ({quality.value} quality)...")
    state = _run(project, lambda production: production.generate_storyboard_batch(quality.value))

    shots = [shot for _, _, shot in state.storyboard.iter_shots()] if state.storyboard else []
    typer.echo(f"\n✅ {sum(1 for shot in shots if shot.clip_url)}/{len(shots)} shots have clips")


@app.command()
def review(project: Path = ProjectOption, verbose: bool = VerboseOption) -> None:
    """Run the executive producer review and the visual QA."""
    setup_logging(verbose)
    typer.echo("🧐 Reviewing the production...")
    state = _run(project, lambda production: production.go_to_review())

    result = state.review
    feedback = result.executive_feedback if result else None
    if feedback:
        typer.echo("\n📊 Executive producer:")
        typer.echo(f"   Pacing: {feedback.pacing_score}")
        typer.echo(f"   Narrative: {feedback.narrative_score}")
        typer.echo(f"   Consistency: {feedback.consistency_score}")
        typer.echo(f"   Notes: {feedback.final_notes}")
    report = result.visual_report if result else None
    if report:
        typer.echo(f"\n🔍 Visual QA: {report.overall_verdict} ({report.overall_score})")
        for issue in report.issues:
            typer.echo(f"   • [{issue.severity}] {issue.shot_id} ({issue.section}): {issue.finding}")
    else:
        typer.echo("\n🔍 Visual QA skipped: no generated images or clips yet")


@app.command()
def status(project: Path = ProjectOption) -> None:
    """Show project status."""
    if not project.exists():
        typer.echo(f"❌ No project found at {project}")
        typer.echo("   Run 'songreel analyze' to create a new project")
        raise typer.Exit(1)

    try:
        state = _load_state(project)
    except (OSError, SnapshotError) as e:
        typer.echo(f"❌ Error loading project: {e}")
        raise typer.Exit(1)

    typer.echo(f"📁 Project: {project}")
    typer.echo(f"   Stage: {state.stage.value}")
    typer.echo(f"   Model tier: {state.model_tier.value}")
    if state.song_analysis:
        typer.echo(f"   Song: {state.song_analysis.title} by {state.song_analysis.artist}")

    if state.storyboard:
        typer.echo("\n📽️  Shots:")
        for _, _, shot in state.storyboard.iter_shots():
            if shot.clip_url:
                status_icon = "🎞️ "
            elif shot.has_ready_image:
                status_icon = "✅"
            else:
                status_icon = "❌" if shot.image_status == AssetStatus.ERROR else "⏳"
            typer.echo(f"   {status_icon} {shot.id}: {shot.start:.1f}-{shot.end:.1f}s {shot.subject[:50]}")

    typer.echo(f"\n🔢 Token usage: {state.token_usage.total}")
    if state.api_error:
        typer.echo(f"⚠️  Last error: {state.api_error}")


if __name__ == "__main__":
    app()
