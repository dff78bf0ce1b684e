"""Label extractor backed by an OpenAI vision model.

Works in three passes over the same screenshot: high-level components,
then the elements inside them, then detector-friendly descriptions for
every element label.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext, PromptType
from .base import ImagePromptService
from .prompts import (
    ANCHOR_LABELING_PROMPT,
    COMPONENT_EXTRACTION_PROMPT,
    ELEMENT_EXTRACTION_PROMPT,
    anchor_user_prompt,
    element_user_prompt,
)


def component_names(payload: Any) -> list[str]:
    """Names of the well-formed ``{component_name, description}`` entries."""
    if not isinstance(payload, list):
        log.warning(f"Expected a list of components, got {type(payload).__name__}")
        return []
    return [
        item["component_name"]
        for item in payload
        if isinstance(item, dict)
        and isinstance(item.get("component_name"), str)
        and isinstance(item.get("description"), str)
    ]


class LabelExtractor(ImagePromptService):
    """Proposes the ``label -> description`` pairs the detector looks for."""

    service_name = "OpenAI-Label-Extraction"
    prompt_type = PromptType.COMPONENT_EXTRACTION
    system_prompt = COMPONENT_EXTRACTION_PROMPT

    async def extract_components(
        self,
        image_bytes: bytes,
        context: Optional[PromptTrackingContext] = None,
    ) -> list[str]:
        payload = await self.ask(image_bytes, "List the components of this screen.", context)
        return component_names(payload)

    async def extract_elements(
        self,
        image_bytes: bytes,
        components: list[str],
        context: Optional[PromptTrackingContext] = None,
    ) -> list[Any]:
        payload = await self.ask(
            image_bytes,
            element_user_prompt(components),
            context,
            system_prompt=ELEMENT_EXTRACTION_PROMPT,
            prompt_type=PromptType.ELEMENT_EXTRACTION,
        )
        return payload if isinstance(payload, list) else []

    async def anchor_labels(
        self,
        image_bytes: bytes,
        elements: list[Any],
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        return await self.ask(
            image_bytes,
            anchor_user_prompt(json.dumps(elements)),
            context,
            system_prompt=ANCHOR_LABELING_PROMPT,
            prompt_type=PromptType.ANCHOR_LABELING,
        )

    async def extract_labels(
        self,
        image_bytes: bytes,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        """Run all three passes; returns the anchor payload as parsed."""
        components = await self.extract_components(image_bytes, context)
        elements = await self.extract_elements(image_bytes, components, context)
        log.debug(f"Extracted {len(components)} components and {len(elements)} elements")
        return await self.anchor_labels(image_bytes, elements, context)
