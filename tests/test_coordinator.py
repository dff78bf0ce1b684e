import asyncio
import json
import unittest

from screenmap.pipeline.coordinator import AnnotationPipeline, BatchStatus
from screenmap.pipeline.models import ElementStatus, ScreenshotInput
from screenmap.storage.cache import SignedUrlCache
from screenmap.storage.loader import ScreenshotLoader
from screenmap.vision.models import NormalizedBox

from pipeline_fakes import (
    FakeBlobSession,
    FakeDetector,
    FakeEnricher,
    FakeExtractor,
    FakeSigner,
    FakeStore,
    FakeValidator,
    make_png,
    make_settings,
)

LABELS = {
    "Header > Title": "app title text",
    "Header > Icon": "hamburger menu icon",
    "Header > Subtitle": "subtitle text",
    "Footer > Button": "checkout button",
}


def _detector(delay: float = 0.0) -> FakeDetector:
    return FakeDetector({}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)], delay=delay)


def _mark_all_overwrite(elements_json: str) -> list[dict]:
    return [
        {
            "label": item["label"],
            "accuracy": 40,
            "status": "Overwrite",
            "suggested_coordinates": {"x_min": 1, "y_min": 1, "x_max": 9, "y_max": 9},
        }
        for item in json.loads(elements_json)
    ]


class AnnotationPipelineTests(unittest.IsolatedAsyncioTestCase):
    async def test_annotate_screenshot(self) -> None:
        pipeline = AnnotationPipeline(_detector(), settings=make_settings())
        components = await pipeline.annotate_screenshot(1, make_png(), LABELS)
        self.assertEqual([(c.component_name, len(c.elements)) for c in components], [("Header", 3), ("Footer", 1)])

    async def test_batch_runs_every_stage_in_order(self) -> None:
        store = FakeStore()
        enricher = FakeEnricher({"Header": {"patternName": "Top Bar", "componentDescription": "App header"}})
        pipeline = AnnotationPipeline(
            _detector(),
            validator=FakeValidator(_mark_all_overwrite),
            enricher=enricher,
            store=store,
            settings=make_settings(),
        )
        screenshots = [
            ScreenshotInput(1, make_png(), LABELS, screenshot_url="https://example.test/1.png"),
            ScreenshotInput(2, b"broken upload", {"Nav > Back": "back arrow"}),
        ]

        result = await pipeline.process_batch(42, screenshots)

        self.assertEqual(result.status, BatchStatus.DONE)
        self.assertEqual(result.failed_screenshots, [2])
        self.assertEqual([c.component_name for c in result.components], ["Header", "Footer"])
        self.assertTrue(all(c.screenshot_url == "https://example.test/1.png" for c in result.components))
        self.assertTrue(
            all(e.status == ElementStatus.OVERWRITE for c in result.components for e in c.elements)
        )
        header = result.components[0]
        self.assertEqual(header.ai_description, "App header")
        self.assertIsNone(result.components[1].ai_description)
        self.assertEqual(len(enricher.calls), 2)
        self.assertEqual(len(store.saved), 1)
        self.assertEqual(len(store.saved[0]), 2)

        self.assertEqual(result.analytics.batch_id, 42)
        self.assertEqual(result.analytics.total_elements_detected, 4)
        self.assertEqual(result.analytics.component_status_counts, {"success": 2})
        self.assertEqual(result.to_dict()["status"], "done")

    async def test_batch_without_usable_screenshots_fails(self) -> None:
        pipeline = AnnotationPipeline(_detector(), settings=make_settings())
        result = await pipeline.process_batch(1, [ScreenshotInput(3, b"???", LABELS)])
        self.assertEqual(result.status, BatchStatus.FAILED)
        self.assertEqual(result.components, [])
        self.assertEqual(result.failed_screenshots, [3])

    async def test_empty_batch_is_done(self) -> None:
        result = await AnnotationPipeline(_detector(), settings=make_settings()).process_batch(1, [])
        self.assertEqual(result.status, BatchStatus.DONE)

    async def test_store_failure_keeps_results(self) -> None:
        pipeline = AnnotationPipeline(_detector(), store=FakeStore(OSError("disk full")), settings=make_settings())
        result = await pipeline.process_batch(1, [ScreenshotInput(1, make_png(), LABELS)])
        self.assertEqual(result.status, BatchStatus.DONE)
        self.assertEqual(len(result.components), 2)

    async def test_unlabeled_screenshots_go_through_extraction(self) -> None:
        labeled, unlabeled, unlucky = (make_png(color=(i, i, i, 255)) for i in (1, 2, 3))
        extractor = FakeExtractor({unlabeled: {"Card > Title": "card title"}, unlucky: RuntimeError("quota exceeded")})
        pipeline = AnnotationPipeline(_detector(), settings=make_settings(), extractor=extractor)
        screenshots = [ScreenshotInput(1, labeled, LABELS), ScreenshotInput(2, unlabeled), ScreenshotInput(3, unlucky)]

        result = await pipeline.process_batch(8, screenshots)

        self.assertEqual(extractor.calls, [unlabeled, unlucky])
        self.assertEqual(
            [(c.screenshot_id, c.component_name) for c in result.components],
            [(1, "Header"), (1, "Footer"), (2, "Card")],
        )
        self.assertEqual(result.failed_screenshots, [3])
        self.assertEqual(result.status, BatchStatus.DONE)

    async def test_unlabeled_screenshot_without_extractor_is_skipped(self) -> None:
        detector = _detector()
        result = await AnnotationPipeline(detector, settings=make_settings()).process_batch(
            1, [ScreenshotInput(1, make_png())]
        )
        self.assertEqual(result.failed_screenshots, [1])
        self.assertEqual(detector.calls, [])

    async def test_storage_paths_are_signed_once_and_fetched(self) -> None:
        settings = make_settings()
        signer = FakeSigner()
        session = FakeBlobSession({"https://storage.test/shots/1.png": make_png()})
        loader = ScreenshotLoader(signer, SignedUrlCache(ttl_seconds=60, max_entries=10), settings, session=session)
        pipeline = AnnotationPipeline(_detector(), settings=settings, loader=loader)

        first = await pipeline.process_batch(
            1,
            [
                ScreenshotInput(1, labels=LABELS, storage_path="shots/1.png"),
                ScreenshotInput(2, labels=LABELS, storage_path="shots/gone.png"),
            ],
        )
        second = await pipeline.process_batch(2, [ScreenshotInput(1, labels=LABELS, storage_path="shots/1.png")])

        self.assertEqual(first.failed_screenshots, [2])
        self.assertEqual({c.screenshot_id for c in first.components}, {1})
        self.assertEqual(len(second.components), 2)
        self.assertEqual(signer.calls, ["shots/1.png", "shots/gone.png"])
        self.assertEqual(session.requested.count("https://storage.test/shots/1.png?token=1"), 2)
        self.assertTrue(all(c.screenshot_url == "https://storage.test/shots/1.png?token=1" for c in second.components))

    async def test_timeout_marks_batch_failed_and_keeps_settled_work(self) -> None:
        settings = make_settings(pipeline_timeout_seconds=0.2, screenshot_concurrency=1, detection_concurrency=4)
        detector = FakeDetector({"slow": [NormalizedBox(0.1, 0.1, 0.4, 0.4)]}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)])
        slow_detector = _SlowForDescription(detector, "slow", delay=5.0)
        pipeline = AnnotationPipeline(slow_detector, settings=settings)
        screenshots = [
            ScreenshotInput(1, make_png(), LABELS),
            ScreenshotInput(2, make_png(), {"Late > Item": "slow"}),
        ]

        result = await pipeline.process_batch(5, screenshots)

        self.assertTrue(result.timed_out)
        self.assertEqual(result.status, BatchStatus.FAILED)
        self.assertEqual([c.screenshot_id for c in result.components], [1, 1])
        self.assertEqual(result.failed_screenshots, [2])


class _SlowForDescription:
    """Wraps a detector and stalls on one description."""

    def __init__(self, inner: FakeDetector, description: str, delay: float) -> None:
        self.inner = inner
        self.description = description
        self.delay = delay
        self.model_name = inner.model_name

    async def detect(self, image_bytes, description, context=None):
        if description == self.description:
            await asyncio.sleep(self.delay)
        return await self.inner.detect(image_bytes, description, context)


if __name__ == "__main__":
    unittest.main()
