"""External model clients used by the annotation pipeline."""

from .enricher import MetadataEnricher
from .extractor import LabelExtractor
from .moondream_client import MoondreamDetector, parse_detections
from .openai_client import ChatResult, OpenAIClient, encode_data_url, get_openai_client
from .response_parser import parse_json_payload
from .validator import AccuracyValidator

__all__ = [
    "AccuracyValidator",
    "ChatResult",
    "LabelExtractor",
    "MetadataEnricher",
    "MoondreamDetector",
    "OpenAIClient",
    "encode_data_url",
    "get_openai_client",
    "parse_detections",
    "parse_json_payload",
]
