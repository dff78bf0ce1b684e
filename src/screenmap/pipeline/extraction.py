"""Label extraction stage: proposes the labels detection will look for."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Mapping, Optional

from ..core.config import Config, config
from ..core.errors import ExtractionError
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext
from .executor import BoundedExecutor
from .models import Extractor, ScreenshotInput


@dataclass
class ExtractionResult:
    screenshot_id: int
    labels: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.labels)


def parse_anchor_labels(payload: Any) -> dict[str, str]:
    """Keep the ``label -> description`` pairs where both sides are non-blank strings."""
    if not isinstance(payload, Mapping):
        log.warning(f"Label payload is {type(payload).__name__}, expected an object")
        return {}
    labels = {}
    for label, description in payload.items():
        if isinstance(label, str) and isinstance(description, str) and label.strip() and description.strip():
            labels[label.strip()] = description.strip()
        else:
            log.debug(f"Dropping unusable label entry {label!r}: {description!r}")
    return labels


class ExtractionStage:
    """Asks the extractor for labels on every screenshot that arrived without any."""

    def __init__(self, extractor: Extractor, settings: Config = config) -> None:
        self.extractor = extractor
        self.settings = settings

    async def extract_screenshot(
        self,
        screenshot: ScreenshotInput,
        context: Optional[PromptTrackingContext] = None,
    ) -> dict[str, str]:
        """Labels for one screenshot. Raises :class:`ExtractionError` when none are usable."""
        if not screenshot.image_bytes:
            raise ExtractionError(f"Screenshot {screenshot.screenshot_id} has no image bytes")
        payload = await self.extractor.extract_labels(screenshot.image_bytes, context)
        labels = parse_anchor_labels(payload)
        if not labels:
            raise ExtractionError(f"No labels extracted for screenshot {screenshot.screenshot_id}")
        return labels

    async def run(
        self,
        screenshots: list[ScreenshotInput],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> dict[int, ExtractionResult]:
        """Extract labels for ``screenshots`` and write them onto each one.

        A failure is recorded on that screenshot's result; the others carry on.
        """
        contexts = contexts or {}
        log.log_stage("label_extraction", {"screenshots": len(screenshots)})

        executor = BoundedExecutor(self.settings.extraction_concurrency, name="extraction")
        outcomes = await executor.run(
            [
                partial(self.extract_screenshot, screenshot, contexts.get(screenshot.screenshot_id))
                for screenshot in screenshots
            ]
        )

        results: dict[int, ExtractionResult] = {}
        for screenshot, outcome in zip(screenshots, outcomes):
            result = ExtractionResult(screenshot.screenshot_id)
            if outcome.ok and outcome.value:
                result.labels = outcome.value
                screenshot.labels = dict(outcome.value)
                log.info(f"[Screenshot {screenshot.screenshot_id}] Extracted {len(result.labels)} labels")
            else:
                result.error = str(outcome.error) or type(outcome.error).__name__
                log.error(f"[Screenshot {screenshot.screenshot_id}] Label extraction failed: {result.error}")
            results[screenshot.screenshot_id] = result

        failed = sum(1 for result in results.values() if not result.ok)
        log.info(f"Completed label extraction for {len(screenshots)} screenshots ({failed} failed)")
        return results
