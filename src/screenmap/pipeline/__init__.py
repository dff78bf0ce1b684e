"""The batch annotation pipeline: extraction, grouping, detection, merges and coordination."""

from .accuracy import AccuracyValidationStage, merge_accuracy
from .analytics import BatchAnalytics, summarize_batch
from .coordinator import AnnotationPipeline, BatchResult, BatchStatus
from .detection import DetectionStage, derive_component_status
from .executor import BoundedExecutor, Outcome, run_bounded
from .extraction import ExtractionResult, ExtractionStage, parse_anchor_labels
from .grouping import determine_hierarchical_groups, group_labels
from .metadata import MetadataExtractionStage, merge_metadata, parse_metadata_payload
from .models import (
    ComponentDetectionResult,
    ComponentStatus,
    Detector,
    ElementDetectionItem,
    ElementStatus,
    Enricher,
    Extractor,
    ScreenshotInput,
    ScreenshotSource,
    Validator,
)

__all__ = [
    "AccuracyValidationStage",
    "AnnotationPipeline",
    "BatchAnalytics",
    "BatchResult",
    "BatchStatus",
    "BoundedExecutor",
    "ComponentDetectionResult",
    "ComponentStatus",
    "DetectionStage",
    "Detector",
    "ElementDetectionItem",
    "ElementStatus",
    "Enricher",
    "ExtractionResult",
    "ExtractionStage",
    "Extractor",
    "MetadataExtractionStage",
    "Outcome",
    "ScreenshotInput",
    "ScreenshotSource",
    "Validator",
    "derive_component_status",
    "determine_hierarchical_groups",
    "group_labels",
    "merge_accuracy",
    "merge_metadata",
    "parse_anchor_labels",
    "parse_metadata_payload",
    "run_bounded",
    "summarize_batch",
]
