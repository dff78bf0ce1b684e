"""Command line entry point: annotate one screenshot from disk."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core.config import config
from .core.logger import log
from .pipeline.coordinator import AnnotationPipeline, BatchResult
from .pipeline.models import ScreenshotInput
from .storage.store import JsonResultStore
from .utils.file_utils import load_json


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="screenmap", description="Batch annotation pipeline for UI screenshots")
    subparsers = parser.add_subparsers(dest="command", required=True)

    annotate = subparsers.add_parser("annotate", help="Detect, group and render the labels of one screenshot")
    annotate.add_argument("image", help="Path to the screenshot image")
    annotate.add_argument("labels", nargs="?", default=None,
                          help="Path to a JSON object mapping label -> description "
                               "(omitted: labels are extracted by the model, needs OPENAI_API_KEY)")
    annotate.add_argument("--screenshot-id", type=int, default=1,
                          help="Identifier recorded on every component (default: 1)")
    annotate.add_argument("--output-dir", "-o", default=None,
                          help=f"Directory for result files (default: {config.results_dir})")
    annotate.add_argument("--validate", action="store_true",
                          help="Run the accuracy validation stage (needs OPENAI_API_KEY)")
    annotate.add_argument("--enrich", action="store_true",
                          help="Run the metadata extraction stage (needs OPENAI_API_KEY)")
    return parser


def _load_labels(path: str) -> Optional[dict[str, str]]:
    data = load_json(path)
    if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
        log.error(f"Labels file must hold a JSON object of label -> description: {path}")
        return None
    return data


async def run_annotate(args: argparse.Namespace) -> BatchResult:
    # imported here so `--help` works without the HTTP/OpenAI stack configured
    from .ai import AccuracyValidator, LabelExtractor, MetadataEnricher, MoondreamDetector

    labels: dict[str, str] = {}
    if args.labels is not None:
        loaded = _load_labels(args.labels)
        if loaded is None:
            return BatchResult(batch_id=None)
        labels = loaded

    screenshot = ScreenshotInput(
        screenshot_id=args.screenshot_id,
        image_bytes=Path(args.image).read_bytes(),
        labels=labels,
    )
    async with MoondreamDetector() as detector:
        pipeline = AnnotationPipeline(
            detector,
            validator=AccuracyValidator() if args.validate else None,
            enricher=MetadataEnricher() if args.enrich else None,
            store=JsonResultStore(args.output_dir),
            extractor=LabelExtractor() if args.labels is None else None,
        )
        return await pipeline.process_batch(None, [screenshot])


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function; returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        config.validate_config()
    except ValueError as exc:
        log.error(f"Invalid configuration: {exc}")
        return 2

    if not Path(args.image).exists():
        log.error(f"Image not found: {args.image}")
        return 1

    result = asyncio.run(run_annotate(args))
    if not result.components:
        log.error("No components were produced")
        return 1

    for component in result.components:
        log.success(
            f"{component.component_name}: {component.status.value} "
            f"({len(component.elements)} elements, {component.total_inference_time_ms:.0f}ms)"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
