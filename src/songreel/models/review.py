"""Review models: visual continuity QA and review progress."""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from .storyboard import ExecutiveFeedback


class ReviewStatus(str, Enum):
    """Progress of one review pass."""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ContinuityIssue(BaseModel):
    """A single continuity problem found in a shot."""

    shot_id: str = Field(..., description="Shot the finding refers to")
    scene_id: str = ""
    section: str = "unknown"
    asset_type: str = Field(default="image", description="image or video")
    asset_url: Optional[str] = None
    severity: str = Field(default="minor", description="minor, moderate or major")
    finding: str = ""
    recommendation: str = ""

    class Config:
        """Pydantic config."""
        frozen = True


class ContinuityChecklist(BaseModel):
    character_consistency: str = ""
    style_consistency: str = ""
    continuity: str = ""
    visual_quality: str = ""

    class Config:
        frozen = True


class VisualContinuityReport(BaseModel):
    """Result of the visual QA pass over generated images and clips."""

    summary: str = ""
    overall_verdict: str = ""
    overall_score: Optional[float] = None
    checklist: ContinuityChecklist = Field(default_factory=ContinuityChecklist)
    issues: List[ContinuityIssue] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        frozen = True


class ReviewState(BaseModel):
    """Executive and visual review of the current storyboard."""

    executive_status: ReviewStatus = ReviewStatus.IDLE
    executive_feedback: Optional[ExecutiveFeedback] = None
    visual_status: ReviewStatus = ReviewStatus.IDLE
    visual_report: Optional[VisualContinuityReport] = None

    class Config:
        """Pydantic config."""
        frozen = True
