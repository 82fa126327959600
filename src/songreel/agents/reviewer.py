"""Review agent: executive producer review and visual continuity QA."""

import json
import logging
from typing import Dict, List, Tuple

from pydantic import ValidationError

from ..models import (
    Bibles,
    CreativeBrief,
    ExecutiveFeedback,
    ModelTier,
    Shot,
    Storyboard,
    VisualContinuityReport,
)
from ..models.bible import ERROR_SENTINEL
from ..services.base import Generated
from .base import BaseAgent

logger = logging.getLogger(__name__)

# Most assets sent to a single visual QA request.
MAX_REVIEW_ASSETS = 12

SYSTEM_PROMPT = """You are an executive producer and continuity supervisor for music videos.
You review storyboards and generated footage with a critical, constructive eye.

Output valid JSON only, with no additional text or markdown formatting."""


def collect_review_assets(storyboard: Storyboard) -> List[Tuple[str, str, Shot]]:
    """Return (asset_type, url, shot) for shots with a clip or a usable preview.

    Clips win over stills; at most MAX_REVIEW_ASSETS entries are returned in
    storyboard order.
    """
    assets = []
    for _, _, shot in storyboard.iter_shots():
        if shot.clip_url:
            assets.append(("video", shot.clip_url, shot))
        elif shot.preview_image_url and shot.preview_image_url != ERROR_SENTINEL:
            assets.append(("image", shot.preview_image_url, shot))
        if len(assets) >= MAX_REVIEW_ASSETS:
            break
    return assets


class ReviewAgent(BaseAgent):
    """Claude-backed reviewer for the review stage."""

    @property
    def name(self) -> str:
        """Return the agent's name."""
        return "ReviewAgent"

    @property
    def system_prompt(self) -> str:
        """Return the system prompt for reviews."""
        return SYSTEM_PROMPT

    def executive_review(
        self, storyboard: Storyboard, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[ExecutiveFeedback]:
        """Score pacing, narrative and consistency of the storyboard.

        Raises:
            ValueError: If the reply is not a valid review.
        """
        self._logger.info(f"Running executive review of '{storyboard.title}'")
        prompt = "\n".join([
            "Act as a seasoned executive producer. Review the complete music video plan below and give "
            "a final assessment.",
            "Return {\"pacing_score\", \"narrative_score\", \"consistency_score\" (each 1-10), "
            "\"final_notes\"}. final_notes holds concrete, actionable notes.",
            "",
            f"Creative Brief:\n{json.dumps(brief.model_dump(mode='json'), indent=2)}",
            f"Visual Bibles:\n{json.dumps(bibles.model_dump(mode='json', exclude={'characters': {'__all__': {'source_images'}}, 'locations': {'__all__': {'source_images'}}}), indent=2)}",
            f"Storyboard:\n{self._storyboard_outline(storyboard)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=2048, temperature=0.5)
        try:
            feedback = ExecutiveFeedback.model_validate(response.value)
        except ValidationError as e:
            raise ValueError(f"Invalid executive review: {e}")
        return Generated(feedback, response.usage)

    def visual_review(
        self, storyboard: Storyboard, bibles: Bibles, brief: CreativeBrief, tier: ModelTier
    ) -> Generated[VisualContinuityReport]:
        """Check generated stills and clips for continuity problems.

        Stills are attached as images; clips are described by URL.

        Raises:
            ValueError: If there is nothing to review or the reply is invalid.
        """
        assets = collect_review_assets(storyboard)
        if not assets:
            raise ValueError("No generated assets to review")

        images = [url for asset_type, url, _ in assets if asset_type == "image"]
        listing = [
            {
                "shot_id": shot.id,
                "asset_type": asset_type,
                "asset_url": url if asset_type == "video" else f"image {images.index(url) + 1}",
                "subject": shot.subject,
                "characters": shot.character_refs,
                "location": shot.location_ref,
            }
            for asset_type, url, shot in assets
        ]
        self._logger.info(f"Running visual QA over {len(assets)} assets")
        prompt = "\n".join([
            "Review these generated assets of one music video for character consistency, style "
            "consistency, continuity and visual quality, against the bibles and the brief.",
            "Return {\"summary\", \"overall_verdict\" (pass|needs_work|fail), \"overall_score\" (1-10), "
            "\"checklist\": {character_consistency, style_consistency, continuity, visual_quality}, "
            "\"issues\": [{shot_id, scene_id, section, asset_type, asset_url, severity (minor|moderate|major), "
            "finding, recommendation}]}.",
            "",
            f"Creative Brief:\n{json.dumps(brief.model_dump(mode='json'), indent=2)}",
            f"Characters: {', '.join(c.name for c in bibles.characters) or 'none'}",
            f"Locations: {', '.join(l.name for l in bibles.locations) or 'none'}",
            f"Assets:\n{json.dumps(listing, indent=2)}",
        ])
        response = self._request_json(prompt, tier, max_tokens=4096, temperature=0.3, images=images)
        data = response.value
        if not isinstance(data, dict):
            raise ValueError("Visual review is not a JSON object")

        asset_urls = {shot.id: (asset_type, url) for asset_type, url, shot in assets}
        data = {**data, "issues": self._fill_issues(data.get("issues"), storyboard, asset_urls)}
        try:
            report = VisualContinuityReport.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid visual review: {e}")
        self._logger.info(f"Visual QA verdict: {report.overall_verdict} ({len(report.issues)} issues)")
        return Generated(report, response.usage)

    def _fill_issues(
        self, issues, storyboard: Storyboard, asset_urls: Dict[str, Tuple[str, str]]
    ) -> List[dict]:
        """Drop malformed issues and fill location fields from the storyboard."""
        lookup = {
            shot.id: (scene.id, scene.section)
            for scene in storyboard.scenes
            for shot in scene.shots
        }
        filled = []
        for issue in issues if isinstance(issues, list) else []:
            if not isinstance(issue, dict) or not issue.get("shot_id"):
                continue
            shot_id = str(issue["shot_id"])
            scene_id, section = lookup.get(shot_id, ("", "unknown"))
            asset_type, asset_url = asset_urls.get(shot_id, ("image", None))
            filled.append({
                **issue,
                "shot_id": shot_id,
                "scene_id": issue.get("scene_id") or scene_id,
                "section": issue.get("section") or section or "unknown",
                "asset_type": issue.get("asset_type") or asset_type,
                "asset_url": asset_url,
            })
        return filled

    @staticmethod
    def _storyboard_outline(storyboard: Storyboard) -> str:
        outline = [
            {
                "section": scene.section,
                "description": scene.description,
                "shots": [
                    {
                        "id": shot.id,
                        "start": shot.start,
                        "end": shot.end,
                        "shot_type": shot.shot_type,
                        "subject": shot.subject,
                        "action": shot.action,
                    }
                    for shot in scene.shots
                ],
            }
            for scene in storyboard.scenes
        ]
        return json.dumps(outline, indent=2)
