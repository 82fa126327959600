"""Director agent: song analysis and all planning steps."""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..models import (
    VFX_PRESETS,
    Bibles,
    CreativeBrief,
    ModelTier,
    Scene,
    SingerGender,
    SongAnalysis,
    SongFile,
    Storyboard,
    Transition,
)
from ..models.song import Beat
from ..services.base import Generated
from .base import BaseAgent

logger = logging.getLogger(__name__)

TRANSITION_TYPES = ("Hard Cut", "Crossfade", "Fade to Black", "Whip Pan", "Match Cut", "Glitch")

VIDEO_TYPES = (
    "Concert Performance",
    "Story Narrative",
    "Hybrid Performance-Story",
    "Animated/Cartoon",
    "Abstract/Experimental",
    "Lyric Video",
    "Documentary Style",
    "Cinematic Concept",
    "Dance/Choreography",
    "Stop Motion/Claymation",
)

SYSTEM_PROMPT = """You are a music video director working with a production team.
You analyze songs, design visual bibles, plan storyboards and advise on edits.

Output valid JSON only, with no additional text or markdown formatting.
Use exactly the field names requested in each task."""


def derive_beats(analysis: SongAnalysis) -> List[Beat]:
    """Lay a beat grid over the song from its tempo and structure.

    Beats fall every 60/bpm seconds from 0 to the end of the song; beats in
    chorus sections get high energy, the rest moderate energy.
    """
    duration = analysis.duration
    if duration <= 0:
        return []
    interval = 60.0 / analysis.bpm
    beats: List[Beat] = []
    time = 0.0
    while time <= duration:
        section = next((s for s in analysis.structure if s.start <= time < s.end), None)
        energy = 0.9 if section and "chorus" in section.name.lower() else 0.6
        beats.append(Beat(time=round(time, 3), energy=energy))
        time += interval
    return beats


class DirectorAgent(BaseAgent):
    """Claude-backed song analyzer and creative generator.

    Every method returns a `Generated` carrying the parsed result and the
    tokens the request consumed.
    """

    @property
    def name(self) -> str:
        """Return the agent's name."""
        return "DirectorAgent"

    @property
    def system_prompt(self) -> str:
        """Return the system prompt for planning."""
        return SYSTEM_PROMPT

    # Song analysis

    def analyze_song(
        self,
        song: SongFile,
        lyrics: str,
        title: str,
        artist: str,
        tier: ModelTier,
    ) -> Generated[SongAnalysis]:
        """Analyze a song from its lyrics and metadata.

        Raises:
            ValueError: If the reply is not a valid analysis.
        """
        self._logger.info(f"Analyzing '{title or song.name}' by {artist or 'unknown artist'}")
        prompt = "\n".join([
            "Analyze the following song lyrics and metadata to create a detailed musical and lyrical analysis.",
            "",
            "Return a JSON object with these fields:",
            "- title, artist, genre (strings), bpm (number), mood and instrumentation (string arrays)",
            "- structure: array of {name, start, end} sections in seconds (intro, verse_1, chorus_1, ...)",
            "- vocals: {count, type (solo|duet|group|instrumental), duet_pairing, vocalists: "
            "[{id, display_name, gender (male|female|unspecified), role, segments: [{start, end}]}]}",
            "- lyric_analysis: {primary_themes, narrative_structure, imagery_style, emotional_arc, key_visual_elements}",
            f"- recommended_video_types: {{primary, alternatives, reasoning}}; types are: {', '.join(VIDEO_TYPES)}",
            "",
            f"Song Title: {title or 'Untitled'}",
            f"Artist: {artist or 'Unknown'}",
            f"Audio file: {song.name} ({song.mime_type}, {len(song.data)} bytes)",
            "Lyrics:",
            "---",
            lyrics,
            "---",
        ])
        response = self._request_json(prompt, tier, max_tokens=8192, temperature=0.3)
        if not isinstance(response.value, dict):
            raise ValueError("Song analysis is not a JSON object")

        data = dict(response.value)
        data["lyrics"] = lyrics
        data["title"] = data.get("title") or title or "Untitled"
        data["artist"] = data.get("artist") or artist or "Unknown Artist"
        vocals = data.get("vocals")
        if isinstance(vocals, dict):
            for vocalist in vocals.get("vocalists") or []:
                if isinstance(vocalist, dict) and vocalist.get("gender") not in [g.value for g in SingerGender]:
                    vocalist["gender"] = SingerGender.UNSPECIFIED.value
        data.pop("beats", None)

        try:
            analysis = SongAnalysis.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid song analysis: {e}")

        analysis = analysis.model_copy(update={"beats": derive_beats(analysis)})
        self._logger.info(
            f"Analysis: {analysis.bpm:.0f} BPM, {len(analysis.structure)} sections, "
            f"{len(analysis.beats)} beats"
        )
        return Generated(analysis, response.usage)

    # Planning

    def generate_bibles(
        self,
        analysis: SongAnalysis,
        brief: CreativeBrief,
        singer_gender: SingerGender,
        tier: ModelTier,
    ) -> Generated[Bibles]:
        """Generate character and location bibles.

        Raises:
            ValueError: If the reply does not contain bibles.
        """
        prompt = "\n".join([
            "Act as a world-class cinematographer and production designer. Based on the song analysis "
            "and creative brief, generate hyper-detailed visual bibles for a music video.",
            f"The primary singer's gender is {SingerGender(singer_gender).value}; let it shape the main "
            "character unless the lyrics strongly suggest otherwise.",
            "If the vocals are a duet, create two main characters matching the vocalists; otherwise one.",
            "Always include at least one location. For a Concert Performance, one location must be a venue.",
            "",
            "Return {\"characters\": [...], \"locations\": [...]}.",
            "Character fields: name, role_in_story, physical_appearance {age_range, gender_presentation, "
            "ethnicity, body_type, key_facial_features, hair_style_and_color, eye_color}, "
            "costuming_and_props {outfit_style, specific_clothing_items, signature_props}, "
            "performance_and_demeanor {emotional_arc, performance_style, gaze_direction}, "
            "cinematic_style {camera_lenses, lighting_style, color_dominants_in_shots}.",
            "Location fields: name, setting_type, atmosphere_and_environment {time_of_day, weather, dominant_mood}, "
            "architectural_and_natural_details {style, key_features}, sensory_details {textures, "
            "environmental_effects}, cinematic_style {lighting_style, color_palette, camera_perspective}.",
            "",
            f"Song Analysis:\n{self._dump(analysis, exclude={'beats', 'lyrics'})}",
            f"Creative Brief:\n{self._dump(brief)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=8192)
        data = response.value
        if not isinstance(data, dict):
            raise ValueError("Bibles response is not a JSON object")
        try:
            bibles = Bibles.model_validate({
                "characters": [
                    {**c, "source_images": []} for c in data.get("characters") or [] if isinstance(c, dict)
                ],
                "locations": [
                    {**l, "source_images": []} for l in data.get("locations") or [] if isinstance(l, dict)
                ],
            })
        except ValidationError as e:
            raise ValueError(f"Invalid bibles: {e}")
        if not bibles.characters and not bibles.locations:
            raise ValueError("Bibles response contained no characters or locations")
        self._logger.info(
            f"Generated {len(bibles.characters)} characters and {len(bibles.locations)} locations"
        )
        return Generated(bibles, response.usage)

    def generate_storyboard(
        self, analysis: SongAnalysis, brief: CreativeBrief, bibles: Bibles, tier: ModelTier
    ) -> Generated[Storyboard]:
        """Plan scenes and shots covering the whole song.

        Raises:
            ValueError: If the reply is not a usable storyboard.
        """
        duration = analysis.duration
        prompt = "\n".join([
            "Act as an expert music video director and cinematographer. Create a complete storyboard "
            "from the song analysis, creative brief and visual bibles.",
            f"Each shot becomes one 6-8 second clip. The song is {duration:.0f} seconds long; plan about "
            f"{max(1, round(duration / 7))} shots covering all of it, aligned to the beat grid.",
            "Reference characters and locations from the bibles by name.",
            "If the vocals are a duet, list featured vocalists in performer_refs and set lip_sync_hint "
            "on shots where vocals occur.",
            "",
            "Return {\"title\", \"artist\", \"scenes\": [{id, section, start, end, description, "
            "narrative_beats, shots: [...]}]}.",
            "Shot fields: id, start, end, shot_type, camera_move, composition, subject, action, location_ref, "
            "character_refs, performer_refs, lip_sync_hint, lyric_overlay {text, animation_style} or null, "
            "cinematic_enhancements {lighting_style, camera_lens, camera_motion}, design_agent_feedback "
            "{sync_score (1-10), cohesion_score (1-10), placement, feedback}.",
            "",
            f"Song Analysis:\n{self._dump(analysis, exclude={'beats'})}",
            f"Beat times: {[beat.time for beat in analysis.beats][:400]}",
            f"Creative Brief:\n{self._dump(brief)}",
            f"Visual Bibles:\n{self._dump(bibles)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=16000)
        storyboard = self._parse_storyboard(response.value, analysis)
        self._logger.info(
            f"Generated storyboard with {len(storyboard.scenes)} scenes and "
            f"{sum(1 for _ in storyboard.iter_shots())} shots"
        )
        return Generated(storyboard, response.usage)

    def _parse_storyboard(self, data: Any, analysis: SongAnalysis) -> Storyboard:
        """Turn the reply into a storyboard with unique ids and fresh lifecycles.

        Raises:
            ValueError: If the reply has no scene list or an invalid shot.
        """
        if not isinstance(data, dict) or not isinstance(data.get("scenes"), list):
            raise ValueError("Storyboard response does not contain a scenes array")

        seen_ids = set()
        scenes = []
        for i, scene_data in enumerate(data["scenes"]):
            if not isinstance(scene_data, dict):
                continue
            shots = []
            for j, shot_data in enumerate(scene_data.get("shots") or []):
                if not isinstance(shot_data, dict):
                    continue
                shot_id = str(shot_data.get("id") or f"shot_{i + 1}_{j + 1}")
                if shot_id in seen_ids:
                    shot_id = f"{shot_id}_{i + 1}_{j + 1}"
                seen_ids.add(shot_id)
                shots.append({
                    **shot_data,
                    "id": shot_id,
                    "preview_image_url": None,
                    "clip_url": None,
                    "is_generating_clip": False,
                    "generation_progress": 0,
                })
            scenes.append({
                **scene_data,
                "id": str(scene_data.get("id") or f"scene_{i + 1}"),
                "shots": shots,
                "transitions": [],
            })

        try:
            return Storyboard.model_validate({
                "id": str(data.get("id") or "storyboard"),
                "title": data.get("title") or analysis.title,
                "artist": data.get("artist") or analysis.artist,
                "scenes": scenes,
            })
        except ValidationError as e:
            raise ValueError(f"Invalid storyboard: {e}")

    def generate_transitions(
        self, scene: Scene, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[List[Optional[Transition]]]:
        """Suggest a transition after every shot but the last one."""
        if len(scene.shots) <= 1:
            return Generated([None] * len(scene.shots), 0)

        pairs = [
            {"from": scene.shots[i].subject, "to": scene.shots[i + 1].subject}
            for i in range(len(scene.shots) - 1)
        ]
        prompt = "\n".join([
            "You are an expert video editor. For each pair of shots, suggest a creative transition.",
            f"Available transition types: {', '.join(TRANSITION_TYPES)}.",
            "Return {\"transitions\": [{type, duration, description}]} with exactly "
            f"{len(pairs)} entries, in order.",
            "",
            f"Creative Brief:\n{self._dump(brief)}",
            f"Shot Pairs:\n{json.dumps(pairs, indent=2)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=2048)
        data = response.value
        raw = data.get("transitions", []) if isinstance(data, dict) else data
        transitions: List[Optional[Transition]] = []
        for item in (raw if isinstance(raw, list) else [])[:len(pairs)]:
            try:
                transitions.append(Transition.model_validate(item))
            except ValidationError:
                transitions.append(None)
        transitions += [None] * (len(scene.shots) - len(transitions))
        return Generated(transitions, response.usage)

    # Brief assistance

    def suggest_brief(
        self, analysis: SongAnalysis, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[Dict[str, Any]]:
        """Complete the feel, style and notes of a partially filled brief."""
        prompt = "\n".join([
            "Based on the song analysis and the user's current brief (which may be partially filled), "
            "enhance and complete the brief.",
            "Return {\"feel\", \"style\", \"user_notes\"}; user_notes holds a few concrete visual ideas.",
            "",
            f"Song Analysis:\n{self._dump(analysis, exclude={'beats'})}",
            f"Current User Brief:\n{self._dump(brief)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=2048, temperature=0.9)
        return Generated(self._brief_fields(response.value, ("feel", "style", "user_notes")), response.usage)

    def analyze_moodboard(self, images: List[str], tier: ModelTier) -> Generated[Dict[str, Any]]:
        """Read feel, style, mood and palette off reference images."""
        if not images:
            raise ValueError("No moodboard images given")
        prompt = "\n".join([
            f"Analyze these {len(images)} moodboard images for a music video.",
            "Return {\"feel\", \"style\", \"mood\": [keywords], \"color_palette\": [hex colors]}.",
        ])
        response = self._request_json(prompt, tier, max_tokens=2048, images=images)
        fields = ("feel", "style", "mood", "color_palette")
        return Generated(self._brief_fields(response.value, fields), response.usage)

    def suggest_vfx(
        self, analysis: SongAnalysis, storyboard: Storyboard, tier: ModelTier
    ) -> Generated[Dict[str, str]]:
        """Pick effects for one or two shots in high-energy sections."""
        layout = [
            {
                "section": scene.section,
                "shots": [{"id": shot.id, "start": shot.start, "end": shot.end} for shot in scene.shots],
            }
            for scene in storyboard.scenes
        ]
        prompt = "\n".join([
            "You are a music video editor. Suggest visual effects that sync with the music's energy.",
            "Find shots in high-energy sections (chorus, solo) and pick an effect for 1-2 of them.",
            f"Available VFX Presets: {', '.join(VFX_PRESETS)}",
            "Return a JSON array of {\"shotId\", \"vfx\"}.",
            "",
            f"Song Structure:\n{json.dumps([s.model_dump() for s in analysis.structure], indent=2)}",
            f"Storyboard:\n{json.dumps(layout, indent=2)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=1024)
        data = response.value
        items = data.get("suggestions", []) if isinstance(data, dict) else data
        suggestions: Dict[str, str] = {}
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            shot_id, vfx = item.get("shotId") or item.get("shot_id"), item.get("vfx")
            if shot_id and vfx in VFX_PRESETS and storyboard.find_shot(str(shot_id)):
                suggestions[str(shot_id)] = vfx
        return Generated(suggestions, response.usage)

    @staticmethod
    def _brief_fields(data: Any, fields) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValueError("Brief suggestion is not a JSON object")
        changes = {}
        for key in fields:
            value = data.get(key)
            if value in (None, "", []):
                continue
            if key in ("mood", "color_palette") and isinstance(value, str):
                value = [item.strip() for item in value.split(",") if item.strip()]
            elif isinstance(value, list) and key not in ("mood", "color_palette"):
                value = "\n".join(str(item) for item in value)
            changes[key] = value
        return changes

    @staticmethod
    def _dump(model, exclude=None) -> str:
        return json.dumps(model.model_dump(mode="json", exclude=exclude), indent=2)
