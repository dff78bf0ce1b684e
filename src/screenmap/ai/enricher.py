"""Metadata enricher backed by an OpenAI vision model."""

from __future__ import annotations

from typing import Any, Optional

from ..core.prompt_log import PromptTrackingContext, PromptType
from .base import ImagePromptService
from .prompts import METADATA_EXTRACTION_PROMPT, metadata_user_prompt


class MetadataEnricher(ImagePromptService):
    """Describes a component and each of its elements."""

    service_name = "OpenAI-Metadata-Extraction"
    prompt_type = PromptType.METADATA_EXTRACTION
    system_prompt = METADATA_EXTRACTION_PROMPT

    async def extract(
        self,
        image_bytes: bytes,
        payload_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        return await self.ask(image_bytes, metadata_user_prompt(payload_json), context)
