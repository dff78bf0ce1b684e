"""Pipeline coordinator: sequences the stages for a batch of screenshots."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..core.config import Config, config
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext
from .accuracy import AccuracyValidationStage
from .analytics import BatchAnalytics, summarize_batch
from .detection import DetectionStage
from .executor import BoundedExecutor
from .extraction import ExtractionStage
from .metadata import MetadataExtractionStage
from .models import (
    ComponentDetectionResult,
    Detector,
    Enricher,
    Extractor,
    ScreenshotInput,
    ScreenshotSource,
    Validator,
)

if TYPE_CHECKING:
    from ..storage.store import ResultStore


class BatchStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Everything a batch run produced."""

    batch_id: Optional[int]
    components: list[ComponentDetectionResult] = field(default_factory=list)
    failed_screenshots: list[int] = field(default_factory=list)
    status: BatchStatus = BatchStatus.DONE
    analytics: Optional[BatchAnalytics] = None
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "timed_out": self.timed_out,
            "failed_screenshots": list(self.failed_screenshots),
            "components": [component.to_dict() for component in self.components],
            "analytics": self.analytics.to_dict() if self.analytics else None,
        }


class AnnotationPipeline:
    """Loading, label extraction, detection, accuracy validation, metadata, persistence.

    Each stage waits for every task of the previous one to settle. Stages
    whose collaborator was not supplied are skipped. A screenshot that
    cannot be loaded, or ends up without labels, is left out of detection.
    """

    def __init__(
        self,
        detector: Detector,
        validator: Optional[Validator] = None,
        enricher: Optional[Enricher] = None,
        store: Optional[ResultStore] = None,
        settings: Config = config,
        *,
        extractor: Optional[Extractor] = None,
        loader: Optional[ScreenshotSource] = None,
    ) -> None:
        self.settings = settings
        self.loader = loader
        self.extraction = ExtractionStage(extractor, settings) if extractor is not None else None
        self.detection = DetectionStage(detector, settings)
        self.accuracy = AccuracyValidationStage(validator, settings) if validator is not None else None
        self.metadata = MetadataExtractionStage(enricher, settings) if enricher is not None else None
        self.store = store

    async def load_screenshots(self, screenshots: list[ScreenshotInput]) -> list[ScreenshotInput]:
        """Sign and fetch through the loader; returns the screenshots that have image bytes."""
        pending = [s for s in screenshots if s.storage_path or not s.image_bytes]
        if pending and self.loader is not None:
            log.log_stage("load", {"screenshots": len(pending)})
            executor = BoundedExecutor(self.settings.screenshot_concurrency, name="load")
            outcomes = await executor.run([partial(self.loader.load, screenshot) for screenshot in pending])
            for screenshot, outcome in zip(pending, outcomes):
                if not outcome.ok:
                    log.error(f"[Screenshot {screenshot.screenshot_id}] Could not be loaded: {outcome.error}")

        ready = [s for s in screenshots if s.image_bytes]
        for screenshot in screenshots:
            if not screenshot.image_bytes:
                log.warning(f"[Screenshot {screenshot.screenshot_id}] No image bytes; skipped")
        return ready

    async def extract_labels(
        self,
        screenshots: list[ScreenshotInput],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> list[ScreenshotInput]:
        """Fill in missing labels; returns the screenshots that have labels to detect."""
        unlabeled = [s for s in screenshots if not s.labels]
        if unlabeled and self.extraction is not None:
            await self.extraction.run(unlabeled, contexts)

        ready = [s for s in screenshots if s.labels]
        for screenshot in screenshots:
            if not screenshot.labels:
                log.warning(f"[Screenshot {screenshot.screenshot_id}] No labels to detect; skipped")
        return ready

    async def annotate_screenshot(
        self,
        screenshot_id: int,
        image_bytes: bytes,
        labels: dict[str, str],
        *,
        context: Optional[PromptTrackingContext] = None,
        screenshot_url: Optional[str] = None,
    ) -> list[ComponentDetectionResult]:
        """Decode, detect, group and render one screenshot."""
        return await self.detection.run(
            screenshot_id,
            image_bytes,
            labels,
            context=context,
            screenshot_url=screenshot_url,
        )

    async def validate(
        self,
        components: list[ComponentDetectionResult],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> list[ComponentDetectionResult]:
        if self.accuracy is None:
            log.debug("No validator configured; skipping accuracy validation")
            return components
        return await self.accuracy.run(components, contexts)

    async def enrich(
        self,
        components: list[ComponentDetectionResult],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> list[ComponentDetectionResult]:
        if self.metadata is None:
            log.debug("No enricher configured; skipping metadata extraction")
            return components
        return await self.metadata.run(components, contexts)

    async def persist(self, components: list[ComponentDetectionResult]) -> bool:
        """Hand results to the store. Store errors are logged; results are unchanged."""
        if self.store is None or not components:
            return False
        try:
            await self.store.save(components)
        except Exception as exc:
            log.error(f"Failed to persist {len(components)} components: {exc}")
            return False
        log.info(f"Persisted {len(components)} components")
        return True

    async def process_batch(self, batch_id: Optional[int], screenshots: list[ScreenshotInput]) -> BatchResult:
        """Run every stage over ``screenshots``.

        With ``pipeline_timeout_seconds`` set the whole run is bounded;
        on timeout the batch is ``failed`` but settled components are kept.
        """
        start = time.perf_counter()
        log.log_stage("batch", {"batch_id": batch_id, "screenshots": len(screenshots)})

        contexts = {s.screenshot_id: PromptTrackingContext(batch_id, s.screenshot_id) for s in screenshots}
        settled: dict[int, list[ComponentDetectionResult]] = {}
        result = BatchResult(batch_id=batch_id)

        timeout = self.settings.pipeline_timeout_seconds
        try:
            if timeout:
                await asyncio.wait_for(self._run_stages(screenshots, contexts, settled, result), timeout)
            else:
                await self._run_stages(screenshots, contexts, settled, result)
        except asyncio.TimeoutError:
            log.error(f"[Batch {batch_id}] Timed out after {timeout}s; keeping settled components")
            result.timed_out = True
            if not result.components:
                result.components = self._collect(screenshots, settled)

        result.failed_screenshots = [s.screenshot_id for s in screenshots if not settled.get(s.screenshot_id)]
        if result.timed_out:
            result.status = BatchStatus.FAILED
        elif result.components or not screenshots:
            result.status = BatchStatus.DONE
        else:
            result.status = BatchStatus.FAILED

        interactions = [i for context in contexts.values() for i in context.interactions]
        result.analytics = summarize_batch(batch_id, result.components, interactions)

        log.log_performance(f"batch {batch_id}", (time.perf_counter() - start) * 1000)
        log.info(
            f"[Batch {batch_id}] {result.status.value}: {len(result.components)} components, "
            f"{len(result.failed_screenshots)} screenshots without results"
        )
        return result

    async def _run_stages(
        self,
        screenshots: list[ScreenshotInput],
        contexts: dict[int, PromptTrackingContext],
        settled: dict[int, list[ComponentDetectionResult]],
        result: BatchResult,
    ) -> None:
        loaded = await self.load_screenshots(screenshots)
        ready = await self.extract_labels(loaded, contexts)

        executor = BoundedExecutor(self.settings.screenshot_concurrency, name="screenshots")
        outcomes = await executor.run(
            [partial(self._detect_into, screenshot, contexts, settled) for screenshot in ready]
        )
        for screenshot, outcome in zip(ready, outcomes):
            if not outcome.ok:
                log.error(f"[Screenshot {screenshot.screenshot_id}] Detection aborted: {outcome.error}")

        result.components = self._collect(screenshots, settled)
        await self.validate(result.components, contexts)
        await self.enrich(result.components, contexts)
        await self.persist(result.components)

    async def _detect_into(
        self,
        screenshot: ScreenshotInput,
        contexts: dict[int, PromptTrackingContext],
        settled: dict[int, list[ComponentDetectionResult]],
    ) -> None:
        settled[screenshot.screenshot_id] = await self.annotate_screenshot(
            screenshot.screenshot_id,
            screenshot.image_bytes,
            screenshot.labels,
            context=contexts.get(screenshot.screenshot_id),
            screenshot_url=screenshot.screenshot_url,
        )

    @staticmethod
    def _collect(
        screenshots: list[ScreenshotInput],
        settled: dict[int, list[ComponentDetectionResult]],
    ) -> list[ComponentDetectionResult]:
        components: list[ComponentDetectionResult] = []
        for screenshot in screenshots:
            components.extend(settled.get(screenshot.screenshot_id, []))
        return components
