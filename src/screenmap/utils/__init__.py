"""Utility functions for screenmap.

This sub-package provides utility functions for:
- File and path operations
- Retrying async calls with backoff
"""

from .file_utils import ensure_directory, get_timestamp, load_json, save_image_bytes, save_json
from .helpers import retry_with_backoff

__all__ = [
    "ensure_directory",
    "get_timestamp",
    "load_json",
    "save_image_bytes",
    "save_json",
    "retry_with_backoff",
]
