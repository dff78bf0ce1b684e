"""Normalized-to-pixel coordinate conversion."""

from __future__ import annotations

import math

from ..core.errors import ScalingError
from .models import BoundingBox, NormalizedBox


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def scale_to_pixels(box: NormalizedBox, image_width: int, image_height: int) -> BoundingBox:
    """Convert a ``[0, 1]`` box to absolute pixels, without clamping.

    Out-of-range inputs are passed through so box drawing can clamp them.
    Non-finite coordinates raise :class:`ScalingError`.
    """
    coords = (box.x_min, box.y_min, box.x_max, box.y_max)
    if not all(math.isfinite(c) for c in coords):
        raise ScalingError(f"Non-finite coordinates: {coords}")

    return BoundingBox(
        x_min=_round_half_up(box.x_min * image_width),
        y_min=_round_half_up(box.y_min * image_height),
        x_max=_round_half_up(box.x_max * image_width),
        y_max=_round_half_up(box.y_max * image_height),
    )


def clamp_to_image(box: BoundingBox, image_width: int, image_height: int) -> BoundingBox:
    """Clip a pixel box to ``[0, width] x [0, height]``."""
    return BoundingBox(
        x_min=min(max(box.x_min, 0), image_width),
        y_min=min(max(box.y_min, 0), image_height),
        x_max=min(max(box.x_max, 0), image_width),
        y_max=min(max(box.y_max, 0), image_height),
    )


def scale_and_clamp(box: NormalizedBox, image_width: int, image_height: int) -> BoundingBox:
    """Scale a detector box and clip it to the image.

    Raises :class:`ScalingError` when the result has no positive area.
    """
    pixel_box = clamp_to_image(scale_to_pixels(box, image_width, image_height), image_width, image_height)
    if pixel_box.width() <= 0 or pixel_box.height() <= 0:
        raise ScalingError(f"Degenerate box after scaling: {pixel_box.as_tuple()}")
    return pixel_box
