"""Core components of the screenmap pipeline."""

from .config import Config, config
from .errors import (
    CompositeError,
    DecodeError,
    DetectionError,
    MergeParseError,
    ScalingError,
    ScreenmapError,
)
from .logger import Logger, log
from .prompt_log import PromptInteraction, PromptTrackingContext, PromptType, TokenUsage

__all__ = [
    "CompositeError",
    "Config",
    "DecodeError",
    "DetectionError",
    "Logger",
    "MergeParseError",
    "PromptInteraction",
    "PromptTrackingContext",
    "PromptType",
    "ScalingError",
    "ScreenmapError",
    "TokenUsage",
    "config",
    "log",
]
