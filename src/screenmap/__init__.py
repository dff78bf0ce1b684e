"""screenmap: batch annotation pipeline for UI screenshots.

Takes a screenshot and a flat ``label -> description`` dictionary (or asks
an extractor model to propose one), locates every label with an external
detector, groups labels into components and renders one annotated image
per component. Optional stages merge an external accuracy review and
metadata enrichment into the same records.
"""

__version__ = "0.1.0"

from .pipeline import (
    AnnotationPipeline,
    BatchResult,
    ComponentDetectionResult,
    ElementDetectionItem,
    ElementStatus,
    ScreenshotInput,
)

__all__ = [
    "AnnotationPipeline",
    "BatchResult",
    "ComponentDetectionResult",
    "ElementDetectionItem",
    "ElementStatus",
    "ScreenshotInput",
    "__version__",
]
