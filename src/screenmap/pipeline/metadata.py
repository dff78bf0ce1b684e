"""Metadata enrichment stage.

The enricher answers with one loosely-typed object per component, mixing
component-level keys with element labels. :func:`parse_metadata_payload`
translates it once into :class:`ComponentMetadata`; nothing downstream
inspects raw key sets.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Mapping, Optional

from ..core.config import Config, config
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext
from .executor import BoundedExecutor
from .models import ComponentDetectionResult, Enricher

COMPONENT_LEVEL_KEYS = (
    "patternName",
    "facetTags",
    "states",
    "interaction",
    "userFlowImpact",
    "flowPosition",
)
DESCRIPTION_KEY = "componentDescription"


@dataclass
class ComponentMetadata:
    component_fields: dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    element_fields: dict[str, Any] = field(default_factory=dict)


def parse_metadata_payload(payload: Any, component_name: str) -> Optional[ComponentMetadata]:
    """Split the enricher's answer for ``component_name``.

    Returns ``None`` when the payload is not an object or has no entry for
    the component.
    """
    if not isinstance(payload, Mapping):
        log.warning(f"Metadata payload is {type(payload).__name__}, expected an object")
        return None

    entry = payload.get(component_name)
    if not isinstance(entry, Mapping):
        log.warning(f"No metadata found for component '{component_name}'")
        return None

    description = entry.get(DESCRIPTION_KEY)
    return ComponentMetadata(
        component_fields={key: entry.get(key) for key in COMPONENT_LEVEL_KEYS},
        description=description if isinstance(description, str) else None,
        element_fields={
            key: value
            for key, value in entry.items()
            if key not in COMPONENT_LEVEL_KEYS and key != DESCRIPTION_KEY
        },
    )


def merge_metadata(component: ComponentDetectionResult, payload: Any) -> int:
    """Write enrichment into ``component`` in place; returns the number of elements enriched.

    Elements without a matching key keep ``metadata = None``.
    """
    parsed = parse_metadata_payload(payload, component.component_name)
    if parsed is None:
        return 0

    component.metadata = json.dumps(parsed.component_fields)
    component.ai_description = parsed.description

    enriched = 0
    for element in component.elements:
        if element.label in parsed.element_fields:
            element.metadata = json.dumps(parsed.element_fields[element.label])
            enriched += 1

    unmatched = set(parsed.element_fields) - {element.label for element in component.elements}
    if unmatched:
        log.debug(f"Ignoring metadata for unknown labels in '{component.component_name}': {sorted(unmatched)}")
    return enriched


def build_enrichment_input(component: ComponentDetectionResult) -> dict[str, Any]:
    return {
        "component_name": component.component_name,
        "elements": [
            {"label": element.label, "description": element.description}
            for element in component.elements
        ],
    }


class MetadataExtractionStage:
    """Asks the enricher about each component and merges its answer."""

    def __init__(self, enricher: Enricher, settings: Config = config) -> None:
        self.enricher = enricher
        self.settings = settings

    async def extract_component(
        self,
        component: ComponentDetectionResult,
        context: Optional[PromptTrackingContext] = None,
    ) -> int:
        image = component.original_image or component.annotated_image
        if image is None:
            log.warning(f"Component '{component.component_name}' has no image; skipping metadata extraction")
            return 0

        payload_json = json.dumps(build_enrichment_input(component))
        payload = await self.enricher.extract(image, payload_json, context)
        enriched = merge_metadata(component, payload)
        log.debug(
            f"[Screenshot {component.screenshot_id}] Metadata for '{component.component_name}': "
            f"{enriched}/{len(component.elements)} elements enriched"
        )
        return enriched

    async def run(
        self,
        components: list[ComponentDetectionResult],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> list[ComponentDetectionResult]:
        contexts = contexts or {}
        log.log_stage("metadata_extraction", {"components": len(components)})

        executor = BoundedExecutor(self.settings.metadata_concurrency, name="metadata")
        outcomes = await executor.run(
            [
                partial(self.extract_component, component, contexts.get(component.screenshot_id))
                for component in components
            ]
        )

        for component, outcome in zip(components, outcomes):
            if not outcome.ok:
                log.error(f"Error extracting metadata for component '{component.component_name}': {outcome.error}")

        log.info(f"Completed metadata extraction for {len(components)} components")
        return components
