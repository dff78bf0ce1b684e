"""Bounding box compositor: border-only annotations over a dimmed overlay."""

from __future__ import annotations

import base64
import binascii
import io
import math
from typing import Iterable, Sequence

from PIL import Image, ImageDraw, UnidentifiedImageError

from ..core.config import config
from ..core.errors import CompositeError, DecodeError
from ..core.logger import log
from .models import BoundingBox

RGBA = tuple[int, int, int, int]

_DATA_URL_MARKER = b";base64,"


def _open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def _reinterpret(data: bytes) -> bytes:
    """Treat the buffer as base64 text (optionally a data URL) and decode it."""
    payload = data.strip()
    marker = payload.find(_DATA_URL_MARKER)
    if marker != -1:
        payload = payload[marker + len(_DATA_URL_MARKER):]
    return base64.b64decode(payload, validate=False)


def load_screenshot(image_bytes: bytes) -> tuple[Image.Image, bytes]:
    """Decode screenshot bytes into an RGBA image.

    Returns the image together with bytes that downstream collaborators can
    read: the input itself, or a PNG re-encoding when the input only decoded
    on the second attempt (as base64 text). Raises :class:`DecodeError` when
    both attempts fail.
    """
    try:
        return _open_image(image_bytes).convert("RGBA"), image_bytes
    except (UnidentifiedImageError, OSError, ValueError) as first_error:
        log.warning(f"Invalid initial image format ({first_error}). Attempting conversion...")
        try:
            converted = _open_image(_reinterpret(image_bytes)).convert("RGBA")
        except (UnidentifiedImageError, OSError, ValueError, binascii.Error) as second_error:
            raise DecodeError(f"Image conversion failed: {second_error}") from second_error
        log.info("Image conversion successful")
        return converted, encode_png(converted)


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode screenshot bytes into an RGBA image, see :func:`load_screenshot`."""
    return load_screenshot(image_bytes)[0]


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def sort_by_area(boxes: Iterable[BoundingBox]) -> list[BoundingBox]:
    """Largest first, so a big box's interior clear never wipes a smaller border."""
    return sorted(boxes, key=lambda b: b.area(), reverse=True)


def _box_geometry(box: BoundingBox, image_width: int, image_height: int) -> tuple[int, int, int, int]:
    """Return ``(x, y, width, height)`` of a box clipped to the image."""
    x = max(0, math.floor(box.x_min))
    y = max(0, math.floor(box.y_min))
    width = min(image_width - x, math.ceil(box.x_max - box.x_min))
    height = min(image_height - y, math.ceil(box.y_max - box.y_min))
    return x, y, width, height


def draw_border(overlay: Image.Image, x: int, y: int, width: int, height: int, color: RGBA, line_width: int) -> None:
    """Draw four edge strokes of ``line_width`` pixels onto ``overlay``."""
    draw = ImageDraw.Draw(overlay)
    right = x + width - 1
    bottom = y + height - 1
    # top, bottom, left, right
    draw.rectangle([x, y, right, y + line_width - 1], fill=color)
    draw.rectangle([x, bottom - line_width + 1, right, bottom], fill=color)
    draw.rectangle([x, y, x + line_width - 1, bottom], fill=color)
    draw.rectangle([right - line_width + 1, y, right, bottom], fill=color)


def clear_interior(overlay: Image.Image, x: int, y: int, width: int, height: int, line_width: int) -> None:
    """Make the region strictly inside the border fully transparent."""
    start_x = max(0, x + line_width)
    start_y = max(0, y + line_width)
    end_x = min(overlay.width, x + width - line_width)
    end_y = min(overlay.height, y + height - line_width)

    if end_x - start_x > 0 and end_y - start_y > 0:
        ImageDraw.Draw(overlay).rectangle([start_x, start_y, end_x - 1, end_y - 1], fill=(0, 0, 0, 0))


def composite_boxes(
    base: Image.Image,
    boxes: Sequence[BoundingBox],
    color: RGBA,
    *,
    line_width: int,
    overlay_color: RGBA,
    category_name: str = "",
) -> Image.Image:
    """Return a new RGBA image with ``boxes`` drawn over ``base``.

    Raises :class:`CompositeError` when drawing fails.
    """
    try:
        canvas = base.convert("RGBA")
        overlay = Image.new("RGBA", canvas.size, overlay_color)

        for box in sort_by_area(boxes):
            x, y, width, height = _box_geometry(box, canvas.width, canvas.height)
            if width <= 0 or height <= 0:
                log.warning(f"Invalid box dimensions in category '{category_name}': {width}x{height}")
                continue
            draw_border(overlay, x, y, width, height, color, line_width)
            clear_interior(overlay, x, y, width, height, line_width)

        return Image.alpha_composite(canvas, overlay)
    except (OSError, ValueError, TypeError) as exc:
        raise CompositeError(f"Drawing failed: {exc}", component=category_name) from exc


def generate_annotated_image(
    base: Image.Image,
    boxes: Sequence[BoundingBox],
    color: RGBA | None = None,
    category_name: str = "",
    *,
    line_width: int | None = None,
    overlay_color: RGBA | None = None,
) -> bytes | None:
    """Render one category's annotated PNG, or ``None`` if rendering fails.

    With no boxes the base image is returned re-encoded as PNG.
    """
    color = tuple(color or config.box_color)
    line_width = line_width or config.box_width
    overlay_color = tuple(overlay_color or config.overlay_color)

    try:
        if not boxes:
            return encode_png(base)
        annotated = composite_boxes(
            base,
            boxes,
            color,
            line_width=line_width,
            overlay_color=overlay_color,
            category_name=category_name,
        )
        data = encode_png(annotated)
    except (CompositeError, OSError, ValueError) as exc:
        log.error(f"Error generating annotated image for category '{category_name}': {exc}")
        return None

    log.debug(f"Generated annotated image for category '{category_name}' with {len(boxes)} boxes")
    return data
