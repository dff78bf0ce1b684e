"""Detection stage: one detector call per label, grouped into components."""

from __future__ import annotations

import asyncio
import time
from functools import partial
from pathlib import Path
from typing import Any, Mapping, Optional

from PIL import Image

from ..core.config import Config, config
from ..core.errors import DecodeError, ScalingError
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext
from ..vision.compositor import generate_annotated_image, load_screenshot
from ..vision.debug import create_debug_directory, save_debug_elements, save_debug_overlay
from ..vision.models import NormalizedBox
from ..vision.scaling import scale_and_clamp
from .executor import BoundedExecutor
from .grouping import determine_hierarchical_groups, group_labels
from .models import (
    ComponentDetectionResult,
    ComponentStatus,
    Detector,
    ElementDetectionItem,
    ElementStatus,
)

SCALING_FAILED = "coordinate scaling failed"


def derive_component_status(elements: list[ElementDetectionItem]) -> ComponentStatus:
    """``success`` needs a detection and no errors; ``partial`` has both; anything else failed."""
    has_detected = any(el.status == ElementStatus.DETECTED for el in elements)
    has_error = any(el.status == ElementStatus.ERROR for el in elements)
    if has_detected and not has_error:
        return ComponentStatus.SUCCESS
    if has_detected:
        return ComponentStatus.PARTIAL
    return ComponentStatus.FAILED


def _as_normalized(raw: Any) -> NormalizedBox:
    if isinstance(raw, NormalizedBox):
        return raw
    if isinstance(raw, Mapping):
        try:
            return NormalizedBox.from_mapping(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise ScalingError(f"Malformed detection {raw!r}: {exc}") from exc
    raise ScalingError(f"Unsupported detection type {type(raw).__name__}")


class DetectionStage:
    """Runs the detector for every label of one screenshot and builds components."""

    def __init__(self, detector: Detector, settings: Config = config) -> None:
        self.detector = detector
        self.settings = settings

    @property
    def model_name(self) -> str:
        return getattr(self.detector, "model_name", self.settings.detector_model_name)

    async def detect_element(
        self,
        image_bytes: bytes,
        image_size: tuple[int, int],
        label: str,
        description: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> ElementDetectionItem:
        """Detect one label; failures end up in the returned item, never raised."""
        item = ElementDetectionItem(label=label, description=description, model_name=self.model_name)
        start = time.perf_counter()
        try:
            boxes = await self.detector.detect(image_bytes, description, context)
        except Exception as exc:
            item.status = ElementStatus.ERROR
            item.error = str(exc) or type(exc).__name__
            log.warning(f"Detection failed for '{label}': {item.error}")
        else:
            if not boxes:
                item.status = ElementStatus.NOT_DETECTED
            else:
                if len(boxes) > 1:
                    log.debug(f"'{label}' returned {len(boxes)} boxes; keeping the first")
                try:
                    item.bounding_box = scale_and_clamp(_as_normalized(boxes[0]), *image_size)
                    item.status = ElementStatus.DETECTED
                except ScalingError as exc:
                    item.status = ElementStatus.ERROR
                    item.error = SCALING_FAILED
                    log.warning(f"'{label}' detected but {SCALING_FAILED}: {exc}")
        item.inference_time_ms = (time.perf_counter() - start) * 1000
        log.log_detection(label, item.status.value, item.inference_time_ms)
        return item

    async def run(
        self,
        screenshot_id: int,
        image_bytes: bytes,
        labels: dict[str, str],
        *,
        context: Optional[PromptTrackingContext] = None,
        screenshot_url: Optional[str] = None,
    ) -> list[ComponentDetectionResult]:
        """Detect, group and render every label of one screenshot.

        Returns an empty list when the screenshot cannot be decoded.
        """
        overall_start = time.perf_counter()
        try:
            image, validated_bytes = await asyncio.to_thread(load_screenshot, image_bytes)
        except DecodeError as exc:
            log.error(f"[Screenshot {screenshot_id}] {exc}. Skipping detection for this image.")
            return []

        label_entries = list(labels.items())
        log.info(
            f"[Screenshot {screenshot_id}] Starting detection for {len(label_entries)} labels "
            f"with concurrency {self.settings.detection_concurrency}"
        )

        executor = BoundedExecutor(self.settings.detection_concurrency, name=f"detection[{screenshot_id}]")
        outcomes = await executor.run(
            [
                partial(self.detect_element, validated_bytes, image.size, label, description, context)
                for label, description in label_entries
            ]
        )

        elements_by_label: dict[str, ElementDetectionItem] = {}
        for (label, description), outcome in zip(label_entries, outcomes):
            if outcome.ok and outcome.value is not None:
                elements_by_label[label] = outcome.value
            else:
                log.error(f"[Screenshot {screenshot_id}] Detection task failed unexpectedly for '{label}': {outcome.error!r}")
                elements_by_label[label] = ElementDetectionItem(
                    label=label,
                    description=description,
                    status=ElementStatus.ERROR,
                    model_name=self.model_name,
                    error=str(outcome.error) or "Unknown task error",
                )

        label_to_category = determine_hierarchical_groups(
            [label for label, _ in label_entries],
            separator=self.settings.label_separator,
            min_children=self.settings.category_min_children,
        )

        debug_dir = self._debug_directory(screenshot_id)
        components = []
        for category, category_labels in group_labels(label_to_category).items():
            elements = [elements_by_label[label] for label in category_labels]
            components.append(
                await self._build_component(
                    screenshot_id, category, elements, image, validated_bytes, screenshot_url, debug_dir
                )
            )

        log.log_performance(f"screenshot {screenshot_id} detection", (time.perf_counter() - overall_start) * 1000)
        log.info(f"[Screenshot {screenshot_id}] Detection complete. Found {len(components)} components.")
        return components

    def _debug_directory(self, screenshot_id: int) -> Optional[Path]:
        if not self.settings.save_debug_files:
            return None
        try:
            return create_debug_directory(screenshot_id, self.settings.debug_output_dir)
        except OSError as exc:
            log.warning(f"[Screenshot {screenshot_id}] Debug output disabled: {exc}")
            return None

    async def _build_component(
        self,
        screenshot_id: int,
        category: str,
        elements: list[ElementDetectionItem],
        image: Image.Image,
        validated_bytes: bytes,
        screenshot_url: Optional[str],
        debug_dir: Optional[Path],
    ) -> ComponentDetectionResult:
        boxes = [
            el.bounding_box
            for el in elements
            if el.status == ElementStatus.DETECTED and el.bounding_box is not None
        ]
        annotated = await asyncio.to_thread(
            generate_annotated_image,
            image,
            boxes,
            self.settings.box_color,
            category,
            line_width=self.settings.box_width,
            overlay_color=self.settings.overlay_color,
        )

        component = ComponentDetectionResult(
            screenshot_id=screenshot_id,
            component_name=category,
            description=f"Detection results for {category}",
            status=derive_component_status(elements),
            total_inference_time_ms=sum(el.inference_time_ms for el in elements),
            elements=elements,
            annotated_image=annotated,
            original_image=validated_bytes,
            screenshot_url=screenshot_url,
        )

        save_debug_overlay(debug_dir, category, annotated)
        save_debug_elements(debug_dir, category, component.to_dict())
        log.debug(f"[Screenshot {screenshot_id}] Finished component '{category}' ({component.status.value})")
        return component
