"""Moondream single-object detector over HTTP."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import aiohttp

from ..core.config import Config, config
from ..core.errors import DetectionError
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext, PromptType
from ..utils.helpers import retry_with_backoff
from ..vision.models import NormalizedBox
from .openai_client import encode_data_url

__all__ = ["MoondreamDetector", "parse_detections"]

_SERVICE_NAME = "Moondream-Detect"


class _TransientDetectorError(DetectionError):
    """5xx from the detector; retried."""


_RETRYABLE = (aiohttp.ClientConnectionError, _TransientDetectorError)


def parse_detections(data: Any) -> list[NormalizedBox]:
    """Turn a ``{"objects": [{x_min, y_min, x_max, y_max}, ...]}`` reply into boxes.

    Raises :class:`DetectionError` when the reply does not have that shape.
    """
    if not isinstance(data, dict) or not isinstance(data.get("objects"), list):
        raise DetectionError(f"Unexpected detector response: {str(data)[:200]}")
    try:
        return [NormalizedBox.from_mapping(obj) for obj in data["objects"]]
    except (KeyError, TypeError, ValueError) as exc:
        raise DetectionError(f"Malformed detector object: {exc}") from exc


class MoondreamDetector:
    """Calls the Moondream ``detect`` endpoint once per description.

    Use as an async context manager, or call :meth:`close` when done.
    """

    def __init__(self, settings: Config = config, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.settings = settings
        self.endpoint = settings.moondream_endpoint
        self.model_name = settings.detector_model_name
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> MoondreamDetector:
        """Async context manager entry."""
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.moondream_timeout)
            )
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.moondream_api_key:
            headers["X-Moondream-Auth"] = self.settings.moondream_api_key
        return headers

    async def _post(self, body: dict[str, Any]) -> Any:
        async with self._get_session().post(self.endpoint, json=body, headers=self._headers()) as response:
            if response.status >= 500:
                raise _TransientDetectorError(f"Detector returned HTTP {response.status}")
            if response.status >= 400:
                text = await response.text()
                raise DetectionError(f"Detector returned HTTP {response.status}: {text[:200]}")
            return await response.json(content_type=None)

    async def detect(
        self,
        image_bytes: bytes,
        description: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> list[NormalizedBox]:
        """Locate ``description`` in the image. Raises :class:`DetectionError` on failure."""
        body = {"image_url": encode_data_url(image_bytes), "object": description, "stream": False}

        start = time.perf_counter()
        try:
            data = await retry_with_backoff(self._post, body, max_retries=2, exceptions=_RETRYABLE)
        except DetectionError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as exc:
            raise DetectionError(f"Failed to get response from Moondream: {exc}", label=description) from exc
        duration_ms = (time.perf_counter() - start) * 1000

        boxes = parse_detections(data)
        if context is not None:
            context.record(
                _SERVICE_NAME,
                PromptType.VLM_LABELING,
                f"Detect {description} in image",
                json.dumps(data),
                duration_ms,
            )
        log.debug(f"Detected '{description[:50]}' in {duration_ms / 1000:.2f}s ({len(boxes)} boxes)")
        return boxes
