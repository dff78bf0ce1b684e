"""Records passed between pipeline stages and the collaborator contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from ..core.prompt_log import PromptTrackingContext
from ..vision.models import BoundingBox, NormalizedBox


class ElementStatus(str, Enum):
    """Outcome of one label's detection, later revised by accuracy validation."""

    DETECTED = "Detected"
    NOT_DETECTED = "Not Detected"
    ERROR = "Error"
    OVERWRITE = "Overwrite"

    @classmethod
    def parse(cls, value: Any) -> Optional["ElementStatus"]:
        """Map loose external spellings (``"not_detected"``, ``"NotDetected"``) to a member."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == key:
                return member
        return None


class ComponentStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ElementDetectionItem:
    """One labelled UI element and everything learned about it so far.

    Detection fills the first block of fields; accuracy validation and
    metadata enrichment fill the optional ones later, in place.
    """

    label: str
    description: str
    bounding_box: Optional[BoundingBox] = None
    status: ElementStatus = ElementStatus.NOT_DETECTED
    model_name: str = ""
    inference_time_ms: float = 0.0
    error: Optional[str] = None
    # accuracy validation
    accuracy_score: Optional[float] = None
    suggested_box: Optional[BoundingBox] = None
    original_box: Optional[BoundingBox] = None
    hidden: Optional[bool] = None
    explanation: Optional[str] = None
    # metadata enrichment
    metadata: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Fields sent to the accuracy validator."""
        return {
            "label": self.label,
            "description": self.description,
            "status": self.status.value,
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "description": self.description,
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
            "status": self.status.value,
            "model_name": self.model_name,
            "inference_time_ms": round(self.inference_time_ms, 2),
            "error": self.error,
            "accuracy_score": self.accuracy_score,
            "suggested_box": self.suggested_box.to_dict() if self.suggested_box else None,
            "original_box": self.original_box.to_dict() if self.original_box else None,
            "hidden": self.hidden,
            "explanation": self.explanation,
            "metadata": self.metadata,
        }


@dataclass
class ComponentDetectionResult:
    """All elements of one category on one screenshot, plus its rendered image."""

    screenshot_id: int
    component_name: str
    description: str
    status: ComponentStatus
    total_inference_time_ms: float
    elements: list[ElementDetectionItem] = field(default_factory=list)
    annotated_image: Optional[bytes] = None
    original_image: Optional[bytes] = None
    screenshot_url: Optional[str] = None
    # metadata enrichment
    ai_description: Optional[str] = None
    metadata: Optional[str] = None

    def element(self, label: str) -> Optional[ElementDetectionItem]:
        for item in self.elements:
            if item.label == label:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view without the image buffers."""
        return {
            "screenshot_id": self.screenshot_id,
            "component_name": self.component_name,
            "description": self.description,
            "status": self.status.value,
            "total_inference_time_ms": round(self.total_inference_time_ms, 2),
            "screenshot_url": self.screenshot_url,
            "ai_description": self.ai_description,
            "metadata": self.metadata,
            "has_annotated_image": self.annotated_image is not None,
            "elements": [item.to_dict() for item in self.elements],
        }


@dataclass
class ScreenshotInput:
    """One screenshot entering the pipeline.

    ``image_bytes`` may be left empty when ``storage_path`` is set; a
    :class:`ScreenshotSource` then signs and downloads it. Empty ``labels``
    are filled in by an :class:`Extractor` when one is configured.
    """

    screenshot_id: int
    image_bytes: Optional[bytes] = None
    labels: dict[str, str] = field(default_factory=dict)
    screenshot_url: Optional[str] = None
    storage_path: Optional[str] = None


class ScreenshotSource(Protocol):
    """Fills in ``screenshot_url`` and ``image_bytes``; raises when it cannot."""

    async def load(self, screenshot: ScreenshotInput) -> None:
        ...


class Extractor(Protocol):
    """Proposes ``label -> description`` pairs for a screenshot."""

    async def extract_labels(
        self,
        image_bytes: bytes,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        ...


class Detector(Protocol):
    """Locates one described object; returns zero or more normalized boxes."""

    model_name: str

    async def detect(
        self,
        image_bytes: bytes,
        description: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> list[NormalizedBox]:
        ...


class Validator(Protocol):
    """Judges drawn boxes; returns the parsed payload (any shape) or ``None``."""

    async def validate(
        self,
        annotated_image: bytes,
        elements_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        ...


class Enricher(Protocol):
    """Describes a component and its elements; returns the parsed payload or ``None``."""

    async def extract(
        self,
        image_bytes: bytes,
        payload_json: str,
        context: Optional[PromptTrackingContext] = None,
    ) -> Any:
        ...
