"""Persistence of finalized component results."""

from __future__ import annotations

import asyncio
import os
from collections import defaultdict
from typing import Optional, Protocol

from ..core.config import config
from ..core.logger import log
from ..pipeline.models import ComponentDetectionResult
from ..utils.file_utils import ensure_directory, save_image_bytes, save_json
from ..vision.debug import normalize_label


class ResultStore(Protocol):
    """Accepts finalized components; the schema behind it is its own business."""

    async def save(self, results: list[ComponentDetectionResult]) -> None:
        ...


class JsonResultStore:
    """Writes one ``screenshot_<id>.json`` per screenshot under ``base_dir``.

    Annotated images are written as PNG files next to the JSON and referenced
    by relative path.
    """

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self.base_dir = base_dir or config.results_dir

    async def save(self, results: list[ComponentDetectionResult]) -> None:
        await asyncio.to_thread(self._write, results)

    def _write(self, results: list[ComponentDetectionResult]) -> None:
        by_screenshot: dict[int, list[ComponentDetectionResult]] = defaultdict(list)
        for component in results:
            by_screenshot[component.screenshot_id].append(component)

        base = ensure_directory(self.base_dir)
        for screenshot_id, components in by_screenshot.items():
            records = []
            for component in components:
                record = component.to_dict()
                record["annotated_image_path"] = self._write_image(base, screenshot_id, component)
                records.append(record)

            path = os.path.join(base, f"screenshot_{screenshot_id}.json")
            if not save_json({"screenshot_id": screenshot_id, "components": records}, path):
                raise OSError(f"Could not write results to {path}")
            log.info(f"Saved {len(records)} components for screenshot {screenshot_id} to {path}")

    @staticmethod
    def _write_image(base: str, screenshot_id: int, component: ComponentDetectionResult) -> Optional[str]:
        if component.annotated_image is None:
            return None
        relative = os.path.join(f"screenshot_{screenshot_id}", f"{normalize_label(component.component_name)}.png")
        if not save_image_bytes(component.annotated_image, os.path.join(base, relative)):
            raise OSError(f"Could not write annotated image {relative}")
        return relative
