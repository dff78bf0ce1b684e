"""Per-screenshot tracking of external model interactions."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .logger import log

_PREVIEW_CHARS = 100


class PromptType(str, Enum):
    """Kind of external call being tracked."""

    COMPONENT_EXTRACTION = "component_extraction"
    ELEMENT_EXTRACTION = "element_extraction"
    ANCHOR_LABELING = "anchor_labeling"
    VLM_LABELING = "vlm_labeling"
    ACCURACY_VALIDATION = "accuracy_validation"
    METADATA_EXTRACTION = "metadata_extraction"


@dataclass(slots=True)
class TokenUsage:
    """Token counts reported by a model, when it reports them."""

    input: Optional[int] = None
    output: Optional[int] = None
    total: Optional[int] = None


@dataclass(slots=True)
class PromptInteraction:
    """One recorded call to an external model."""

    batch_id: Optional[int]
    screenshot_id: Optional[int]
    service: str
    prompt_type: PromptType
    prompt: str
    response: str
    duration_ms: float
    usage: TokenUsage = field(default_factory=TokenUsage)
    timestamp: float = field(default_factory=time.time)


class PromptTrackingContext:
    """Collects interactions for one batch/screenshot pair."""

    def __init__(self, batch_id: Optional[int] = None, screenshot_id: Optional[int] = None) -> None:
        self.batch_id = batch_id
        self.screenshot_id = screenshot_id
        self.interactions: list[PromptInteraction] = []

    def record(
        self,
        service: str,
        prompt_type: PromptType,
        prompt: str,
        response: str,
        duration_ms: float,
        usage: TokenUsage | None = None,
    ) -> PromptInteraction:
        """Store an interaction and write it to the prompt log."""
        interaction = PromptInteraction(
            batch_id=self.batch_id,
            screenshot_id=self.screenshot_id,
            service=service,
            prompt_type=prompt_type,
            prompt=prompt[:_PREVIEW_CHARS],
            response=response,
            duration_ms=duration_ms,
            usage=usage or TokenUsage(),
        )
        self.interactions.append(interaction)
        log.log_prompt(
            service,
            prompt_type.value,
            duration_ms,
            f"batch={self.batch_id} screenshot={self.screenshot_id} response={response[:_PREVIEW_CHARS]!r}",
        )
        return interaction

