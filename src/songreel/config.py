"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key"
    )
    google_application_credentials: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""),
        description="Path to Google Cloud service account JSON"
    )
    google_cloud_project: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""),
        description="Google Cloud project ID"
    )

    # Render backend
    render_backend_url: str = Field(
        default_factory=lambda: os.getenv("SONGREEL_BACKEND_URL", "http://localhost:3002"),
        description="Base URL of the clip rendering backend"
    )
    request_timeout: float = Field(
        default_factory=lambda: _float_env("SONGREEL_REQUEST_TIMEOUT", 30.0),
        description="HTTP timeout for backend requests in seconds"
    )

    # Paths
    workspace: Path = Field(
        default_factory=lambda: Path(os.getenv("SONGREEL_WORKSPACE", ".")),
        description="Workspace directory"
    )

    # Model settings
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model for the freemium tier"
    )
    premium_model: str = Field(
        default_factory=lambda: os.getenv("SONGREEL_PREMIUM_MODEL", "claude-opus-4-20250514"),
        description="Claude model for the premium tier"
    )
    imagen_model: str = Field(
        default_factory=lambda: os.getenv("SONGREEL_IMAGEN_MODEL", "imagen-3.0-generate-001"),
        description="Imagen model used for stills"
    )

    # Pacing
    batch_delay: float = Field(
        default_factory=lambda: _float_env("SONGREEL_BATCH_DELAY", 1.5),
        description="Seconds to wait after each item of a sequential batch"
    )
    clip_poll_interval: float = Field(
        default_factory=lambda: _float_env("SONGREEL_POLL_INTERVAL", 1.0),
        description="Seconds between clip status checks"
    )
    clip_poll_max_attempts: int = Field(
        default=300,
        description="Status checks before a clip job is abandoned"
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_required(self) -> None:
        """Validate that required credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def validate_imagen_required(self) -> None:
        """Validate that Google Cloud settings for Imagen are set.

        Raises:
            ValueError: If any required Imagen configuration is missing.
        """
        missing: list[str] = []

        if not self.google_cloud_project:
            missing.append("GOOGLE_CLOUD_PROJECT")

        if missing:
            raise ValueError(
                f"Missing required Imagen configuration: {', '.join(missing)}. "
                "Set the corresponding environment variables."
            )

    def model_for_tier(self, tier: str) -> str:
        """Return the Claude model used for a model tier."""
        return self.premium_model if tier == "premium" else self.default_model


# Global config instance
config = Config()
