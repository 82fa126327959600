"""Prompt text for still and clip generation."""

from typing import Optional

from .models import Bibles, CharacterBible, CreativeBrief, LocationBible, Shot


def _find_character(bibles: Optional[Bibles], name: str) -> Optional[CharacterBible]:
    if bibles is None:
        return None
    return next((c for c in bibles.characters if c.name == name or c.id == name), None)


def _find_location(bibles: Optional[Bibles], name: str) -> Optional[LocationBible]:
    if bibles is None or not name:
        return None
    return next((l for l in bibles.locations if l.name == name or l.id == name), None)


def character_image_prompt(character: CharacterBible, brief: CreativeBrief) -> str:
    """Reference portrait of a character."""
    look = character.physical_appearance
    outfit = character.costuming_and_props
    lines = [
        f"Character reference photo of {character.name}, {character.role_in_story}.",
        f"- Appearance: {look.gender_presentation}, {look.age_range}, {look.body_type} build, "
        f"{look.key_facial_features}, {look.hair_style_and_color} hair, {look.eye_color} eyes.",
        f"- Outfit: {outfit.outfit_style}; {', '.join(outfit.specific_clothing_items) or 'no specific items'}.",
        f"- Props: {', '.join(outfit.signature_props) or 'none'}.",
        f"- Lighting: {character.cinematic_style.lighting_style}.",
        f"- Visual Style: {brief.style}, {brief.feel}.",
    ]
    return "\n".join(lines)


def location_image_prompt(location: LocationBible, brief: CreativeBrief) -> str:
    """Establishing shot of a location."""
    atmosphere = location.atmosphere_and_environment
    details = location.architectural_and_natural_details
    lines = [
        f"Establishing shot of {location.name}, a {location.setting_type}.",
        f"- Time and weather: {atmosphere.time_of_day}, {atmosphere.weather}.",
        f"- Mood: {atmosphere.dominant_mood}.",
        f"- Architecture: {details.style}; {', '.join(details.key_features)}.",
        f"- Lighting: {location.cinematic_style.lighting_style}.",
        f"- Colors: {', '.join(location.cinematic_style.color_palette or brief.color_palette)}.",
        f"- Visual Style: {brief.style}, {brief.feel}.",
    ]
    return "\n".join(lines)


def shot_image_prompt(shot: Shot, bibles: Optional[Bibles], brief: CreativeBrief) -> str:
    """Prompt for a shot's 16:9 still."""
    characters = ", ".join(
        f'Character "{c.name}" ({c.physical_appearance.gender_presentation}, '
        f"wearing {c.costuming_and_props.outfit_style})"
        for c in (_find_character(bibles, ref) for ref in shot.character_refs)
        if c is not None
    )
    location = _find_location(bibles, shot.location_ref)
    location_text = (
        f"Location is {location.name}, which is a {location.setting_type} with "
        f"{location.atmosphere_and_environment.dominant_mood} mood."
        if location else ""
    )
    enhancements = shot.cinematic_enhancements
    lines = [
        "A cinematic, 16:9 aspect ratio photo.",
        f"- Visual Style: {brief.style}, {brief.feel}.",
        f"- Subject: {shot.subject}.",
        f"- Shot Description: {shot.shot_type}, {shot.composition}.",
        f"- Camera: Using a {enhancements.camera_lens}, performing a {enhancements.camera_motion}.",
        f"- Lighting: {enhancements.lighting_style}.",
        f"- Character(s): {characters or 'None'}.",
        f"- Location: {location_text}",
        f"- Important Colors: {', '.join(brief.color_palette)}.",
    ]
    return "\n".join(lines)


def clip_prompt(shot: Shot, bibles: Optional[Bibles], brief: CreativeBrief, detailed: bool = False) -> str:
    """Prompt for animating a shot's still.

    The draft form is a short, weighted prompt for CLIP-based models; the
    detailed form is prose for models with long text encoders.
    """
    characters = [c for c in (_find_character(bibles, ref) for ref in shot.character_refs) if c is not None]
    location = _find_location(bibles, shot.location_ref)
    enhancements = shot.cinematic_enhancements

    if not detailed:
        action = f"{shot.subject}, {shot.action}" if shot.action else shot.subject
        parts = [
            ", ".join(
                f"({c.name}, {c.physical_appearance.gender_presentation}, "
                f"wearing {c.costuming_and_props.outfit_style}:1.3)"
                for c in characters
            ) or "(person:1.2)",
            action,
            f"({location.setting_type}, {location.atmosphere_and_environment.time_of_day}:1.1)" if location else "",
            f"({enhancements.camera_motion}:1.2)" if enhancements.camera_motion else "",
            f"({brief.style}, {brief.feel}:1.1)",
            "(high quality, cinematic:1.2)",
        ]
        return ", ".join(part for part in parts if part)

    parts = ["Animate this scene for a music video."]
    for c in characters:
        look = c.physical_appearance
        parts.append(
            f'Character "{c.name}": {look.gender_presentation}, {look.age_range} years old, '
            f"{look.body_type} build, {look.key_facial_features}, {look.hair_style_and_color}. "
            f"Wearing {c.costuming_and_props.outfit_style}. "
            f"Performance style: {c.performance_and_demeanor.performance_style}."
        )
    if location:
        atmosphere = location.atmosphere_and_environment
        parts.append(
            f'Setting: Location "{location.name}": {location.setting_type}, {atmosphere.time_of_day}, '
            f"{atmosphere.weather} weather, {atmosphere.dominant_mood} mood."
        )
    parts.append(f"Subject: {shot.subject}")
    if shot.action:
        parts.append(f"Character Action: {shot.action}")
    parts.append(f"Shot type: {shot.shot_type}, {shot.composition}")
    parts.append(f"Camera: {enhancements.camera_motion} motion, {shot.camera_move}")
    parts.append(f"Cinematography: {enhancements.lighting_style} lighting, using {enhancements.camera_lens}")
    parts.append(f"Visual style: {brief.style}, {brief.feel}")
    if brief.color_palette:
        parts.append(f"Color palette: {', '.join(brief.color_palette)}")
    if brief.video_type == "Concert Performance":
        parts.append("Live concert performance energy, stage lighting, audience atmosphere.")
    if shot.lip_sync_hint:
        parts.append("Align mouth movements to implied singing (lip-synced look).")
    parts.append(f"Duration: {shot.duration:.1f} seconds")
    return " ".join(parts)
