"""Image utilities for screenmap.

This sub-package converts detector coordinates to pixels and renders the
per-category annotated screenshots.
"""

from .compositor import decode_image, encode_png, generate_annotated_image, load_screenshot
from .models import BoundingBox, NormalizedBox
from .scaling import clamp_to_image, scale_and_clamp, scale_to_pixels

__all__ = [
    "BoundingBox",
    "NormalizedBox",
    "clamp_to_image",
    "decode_image",
    "encode_png",
    "generate_annotated_image",
    "load_screenshot",
    "scale_and_clamp",
    "scale_to_pixels",
]
