"""Accuracy validator backed by an OpenAI vision model."""

from __future__ import annotations

from typing import Any, Optional

from ..core.prompt_log import PromptTrackingContext, PromptType
from .base import ImagePromptService
from .prompts import ACCURACY_VALIDATION_PROMPT, validation_user_prompt


class AccuracyValidator(ImagePromptService):
    """Reviews a component's drawn boxes and returns per-label verdicts."""

    service_name = "OpenAI-Accuracy-Validation"
    prompt_type = PromptType.ACCURACY_VALIDATION
    system_prompt = ACCURACY_VALIDATION_PROMPT

    async def validate(
        self,
        annotated_image: bytes,
        elements_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        return await self.ask(annotated_image, validation_user_prompt(elements_json), context)
