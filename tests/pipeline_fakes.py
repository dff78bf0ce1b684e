"""In-process stand-ins for the external collaborators used in tests."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Optional

from PIL import Image

from screenmap.core.config import Config
from screenmap.core.prompt_log import PromptTrackingContext, PromptType
from screenmap.vision.models import NormalizedBox

BASE_COLOR = (10, 200, 30, 255)


def make_png(width: int = 200, height: int = 100, color: tuple[int, int, int, int] = BASE_COLOR) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_settings(**overrides: Any) -> Config:
    values = {
        "detection_concurrency": 3,
        "validation_concurrency": 2,
        "metadata_concurrency": 2,
        "screenshot_concurrency": 2,
        "save_debug_files": False,
        "pipeline_timeout_seconds": None,
    }
    values.update(overrides)
    return Config(**values)


class FakeDetector:
    """Answers by description; a value that is an exception gets raised."""

    model_name = "fake-detector"

    def __init__(self, answers: dict[str, Any], default: Any = None, delay: float = 0.0) -> None:
        self.answers = answers
        self.default = default if default is not None else []
        self.delay = delay
        self.calls: list[str] = []

    async def detect(
        self,
        image_bytes: bytes,
        description: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> list[NormalizedBox]:
        self.calls.append(description)
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.answers.get(description, self.default)
        if isinstance(answer, Exception):
            raise answer
        if context is not None:
            context.record("fake", PromptType.VLM_LABELING, description, str(answer), 100.0)
        return list(answer)


class FakeValidator:
    def __init__(self, payload: Any = None, error: Optional[Exception] = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[tuple[bytes, str]] = []

    async def validate(
        self,
        annotated_image: bytes,
        elements_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        self.calls.append((annotated_image, elements_json))
        if self.error is not None:
            raise self.error
        return self.payload(elements_json) if callable(self.payload) else self.payload


class FakeEnricher:
    def __init__(self, payload: Any = None) -> None:
        self.payload = payload
        self.calls: list[tuple[bytes, str]] = []

    async def extract(
        self,
        image_bytes: bytes,
        payload_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        self.calls.append((image_bytes, payload_json))
        return self.payload


class FakeStore:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.saved: list[list[Any]] = []

    async def save(self, results: list[Any]) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append(list(results))


FULL_BOX = NormalizedBox(0.1, 0.1, 0.5, 0.5)


class FakeExtractor:
    """Answers by screenshot bytes; a value that is an exception gets raised."""

    def __init__(self, answers: dict[bytes, Any], default: Any = None) -> None:
        self.answers = answers
        self.default = default
        self.calls: list[bytes] = []

    async def extract_labels(
        self,
        image_bytes: bytes,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        self.calls.append(image_bytes)
        answer = self.answers.get(image_bytes, self.default)
        if isinstance(answer, Exception):
            raise answer
        if context is not None:
            context.record("fake", PromptType.ANCHOR_LABELING, "labels", str(answer), 50.0)
        return answer


class _FakeDownload:
    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self) -> bytes:
        return self.body


class FakeBlobSession:
    """Serves ``url -> bytes`` ignoring the query string; unknown URLs get a 404."""

    def __init__(self, blobs: dict[str, bytes]) -> None:
        self.blobs = blobs
        self.requested: list[str] = []

    def get(self, url: str) -> _FakeDownload:
        self.requested.append(url)
        body = self.blobs.get(url.split("?")[0])
        return _FakeDownload(404, b"") if body is None else _FakeDownload(200, body)


class FakeSigner:
    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = failing
        self.calls: list[str] = []

    async def __call__(self, path: str) -> str:
        self.calls.append(path)
        if path in self.failing:
            raise RuntimeError("storage unavailable")
        return f"https://storage.test/{path}?token={len(self.calls)}"
