"""File helpers for debug artefacts and stored results."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Optional

from ..core.logger import log


def ensure_directory(directory_path: str | Path) -> str:
    """Create ``directory_path`` (and parents) if needed; return its absolute path."""
    path = Path(directory_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return str(path)


def get_timestamp() -> str:
    """Current local time as ``YYYY-MM-DD_HH-MM-SS``."""
    return time.strftime("%Y-%m-%d_%H-%M-%S")


def _write(filepath: str | Path, payload: bytes | str, what: str) -> bool:
    path = Path(filepath)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(payload, bytes):
            path.write_bytes(payload)
        else:
            path.write_text(payload, encoding="utf-8")
    except OSError as e:
        log.error(f"Failed to save {what} to {path}: {e}")
        return False
    log.debug(f"Saved {what} to {path}")
    return True


def save_json(data: Any, filepath: str | Path, indent: int = 2) -> bool:
    """Serialize ``data`` to ``filepath``.

    Values JSON cannot represent are written with ``str()``. Returns
    ``False`` (after logging) instead of raising when the write fails.
    """
    try:
        text = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        log.error(f"Failed to serialize JSON for {filepath}: {e}")
        return False
    return _write(filepath, text, "JSON")


def load_json(filepath: str | Path) -> Optional[Any]:
    """Read a JSON file; ``None`` when it is missing or unreadable."""
    path = Path(filepath)
    if not path.exists():
        log.warning(f"JSON file not found: {path}")
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.error(f"Failed to load JSON from {path}: {e}")
        return None


def save_image_bytes(image_data: bytes, filepath: str | Path) -> bool:
    """Write already-encoded image bytes; ``False`` on failure."""
    return _write(filepath, image_data, "image")
