"""Configuration management for the screenmap annotation pipeline."""

from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv()


class Config(BaseSettings):
    """Configuration class for the screenmap pipeline."""

    # OpenAI Configuration (accuracy validation + metadata enrichment)
    openai_api_key: str = Field(default="", description="OpenAI API key (optional for detection-only runs)")
    openai_model: str = Field(default="gpt-4.1-mini")
    openai_max_tokens: int = Field(default=4000)
    openai_temperature: float = Field(default=0.0)

    # Moondream Configuration (single-object detector)
    moondream_api_key: str = Field(default="", description="Moondream cloud API key")
    moondream_endpoint: str = Field(default="https://api.moondream.ai/v1/detect")
    moondream_timeout: float = Field(default=60.0, description="Per-request timeout in seconds")
    detector_model_name: str = Field(default="moondream")

    # Label grouping
    label_separator: str = Field(default=" > ")
    category_min_children: int = Field(default=2, description="A nested path becomes a category above this many children")

    # Concurrency caps, one per stage
    extraction_concurrency: int = Field(default=5)
    detection_concurrency: int = Field(default=5)
    validation_concurrency: int = Field(default=5)
    metadata_concurrency: int = Field(default=5)
    screenshot_concurrency: int = Field(default=3)

    # Box rendering
    box_width: int = Field(default=2)
    box_color: tuple[int, int, int, int] = Field(default=(255, 0, 0, 255))
    overlay_color: tuple[int, int, int, int] = Field(default=(128, 128, 128, 128))

    # Signed URL cache
    signed_url_ttl_seconds: int = Field(default=3600)
    signed_url_cache_size: int = Field(default=500)
    fetch_timeout: float = Field(default=30.0, description="Screenshot download timeout in seconds")

    # Whole-batch deadline; None leaves the batch unbounded
    pipeline_timeout_seconds: Optional[float] = Field(default=None)

    # Framework Configuration
    log_level: str = Field(default="INFO")
    logs_dir: str = Field(default="logs")
    save_debug_files: bool = Field(default=False)
    debug_output_dir: str = Field(default="debug_output")
    results_dir: str = Field(default="results")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unexpected env vars rather than raising errors
    )

    def validate_config(self) -> bool:
        """Validate configuration values."""
        for name in (
            "extraction_concurrency",
            "detection_concurrency",
            "validation_concurrency",
            "metadata_concurrency",
            "screenshot_concurrency",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        if self.box_width < 1:
            raise ValueError("Box width must be at least 1 pixel")

        if not self.label_separator.strip():
            raise ValueError("Label separator must contain a non-whitespace character")

        if self.pipeline_timeout_seconds is not None and self.pipeline_timeout_seconds <= 0:
            raise ValueError("Pipeline timeout must be positive when set")

        return True


# Global configuration instance
config = Config()
