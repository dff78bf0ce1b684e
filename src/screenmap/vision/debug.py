"""Vision debugging helpers: dump annotated category images and element data."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from ..core.config import config
from ..utils.file_utils import ensure_directory, get_timestamp, save_image_bytes, save_json

_NORMALIZE_PATTERN = re.compile(r"[\s>/]")


def normalize_label(label: str) -> str:
    """Turn a hierarchical label into a file-friendly key."""
    return _NORMALIZE_PATTERN.sub("_", label.lower())


def create_debug_directory(screenshot_id: int | str, base_dir: str | None = None) -> Path:
    """Create a timestamped folder for one screenshot's debug output."""
    directory = Path(base_dir or config.debug_output_dir) / f"detection_{screenshot_id}_{get_timestamp()}"
    return Path(ensure_directory(str(directory)))


def save_debug_overlay(output_dir: Path | None, category_name: str, image_bytes: bytes | None) -> None:
    """Write an annotated category image into the debug directory."""
    if output_dir is None or image_bytes is None:
        return

    save_image_bytes(image_bytes, str(output_dir / f"{normalize_label(category_name)}.png"))


def save_debug_elements(output_dir: Path | None, category_name: str, payload: dict[str, Any]) -> None:
    """Write a category's element records next to its debug image."""
    if output_dir is None:
        return
    save_json(payload, str(output_dir / f"{normalize_label(category_name)}.json"))
