import os
import tempfile
import unittest
from unittest import mock

from screenmap.core.errors import DetectionError
from screenmap.core.prompt_log import PromptTrackingContext
from screenmap.pipeline.detection import SCALING_FAILED, DetectionStage, derive_component_status
from screenmap.pipeline.models import ComponentStatus, ElementDetectionItem, ElementStatus
from screenmap.vision.models import BoundingBox, NormalizedBox

from pipeline_fakes import FakeDetector, make_png, make_settings


def _item(status: ElementStatus) -> ElementDetectionItem:
    return ElementDetectionItem("x", "x", status=status)


class ComponentStatusTests(unittest.TestCase):
    def test_status_derivation(self) -> None:
        d, n, e = ElementStatus.DETECTED, ElementStatus.NOT_DETECTED, ElementStatus.ERROR
        self.assertEqual(derive_component_status([_item(d), _item(n)]), ComponentStatus.SUCCESS)
        self.assertEqual(derive_component_status([_item(d), _item(e)]), ComponentStatus.PARTIAL)
        self.assertEqual(derive_component_status([_item(n), _item(n)]), ComponentStatus.FAILED)
        self.assertEqual(derive_component_status([_item(e)]), ComponentStatus.FAILED)
        self.assertEqual(derive_component_status([]), ComponentStatus.FAILED)


class DetectionStageTests(unittest.IsolatedAsyncioTestCase):
    async def test_header_and_footer_components(self) -> None:
        labels = {
            "Header > Title": "app title text",
            "Header > Icon": "hamburger menu icon",
            "Header > Subtitle": "subtitle text",
            "Footer > Button": "checkout button",
        }
        detector = FakeDetector({}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)])
        context = PromptTrackingContext(batch_id=1, screenshot_id=5)

        components = await DetectionStage(detector, make_settings()).run(5, make_png(), labels, context=context)

        counts = {c.component_name: len(c.elements) for c in components}
        self.assertEqual(counts, {"Header": 3, "Footer": 1})
        for component in components:
            self.assertEqual(component.status, ComponentStatus.SUCCESS)
            self.assertEqual(component.screenshot_id, 5)
            self.assertIsNotNone(component.annotated_image)
            self.assertIsNotNone(component.original_image)
        header = components[0]
        self.assertEqual(header.element("Header > Icon").bounding_box, BoundingBox(20, 10, 80, 40))
        self.assertEqual(header.element("Header > Icon").model_name, "fake-detector")
        self.assertEqual(len(context.interactions), 4)

    async def test_failures_are_isolated_per_element(self) -> None:
        labels = {
            "Form > Name": "name field",
            "Form > Email": "email field",
            "Form > Submit": "submit button",
            "Form > Help": "help link",
        }
        detector = FakeDetector(
            {
                "name field": [NormalizedBox(0.0, 0.0, 0.5, 0.5)],
                "email field": DetectionError("service unavailable"),
                "submit button": [NormalizedBox(0.5, 0.5, 0.5, 0.9)],
                "help link": [],
            }
        )

        [component] = await DetectionStage(detector, make_settings()).run(1, make_png(), labels)

        self.assertEqual(component.component_name, "Form")
        self.assertEqual(component.status, ComponentStatus.PARTIAL)
        self.assertEqual(component.element("Form > Name").status, ElementStatus.DETECTED)
        email = component.element("Form > Email")
        self.assertEqual(email.status, ElementStatus.ERROR)
        self.assertEqual(email.error, "service unavailable")
        self.assertIsNone(email.bounding_box)
        submit = component.element("Form > Submit")
        self.assertEqual(submit.status, ElementStatus.ERROR)
        self.assertEqual(submit.error, SCALING_FAILED)
        self.assertIsNone(submit.bounding_box)
        self.assertEqual(component.element("Form > Help").status, ElementStatus.NOT_DETECTED)
        self.assertEqual(
            component.total_inference_time_ms,
            sum(element.inference_time_ms for element in component.elements),
        )

    async def test_multiple_boxes_collapse_to_first(self) -> None:
        detector = FakeDetector(
            {"tab": [NormalizedBox(0.0, 0.0, 0.25, 0.5), NormalizedBox(0.5, 0.5, 1.0, 1.0)]}
        )
        [component] = await DetectionStage(detector, make_settings()).run(1, make_png(), {"Tabs > First": "tab"})
        self.assertEqual(component.elements[0].bounding_box, BoundingBox(0, 0, 50, 50))

    async def test_mapping_detections_are_accepted(self) -> None:
        detector = FakeDetector({"logo": [{"x_min": 0.5, "y_min": 0.0, "x_max": 1.0, "y_max": 1.0}]})
        [component] = await DetectionStage(detector, make_settings()).run(1, make_png(), {"Logo": "logo"})
        self.assertEqual(component.elements[0].bounding_box, BoundingBox(100, 0, 200, 100))

    async def test_undecodable_screenshot_returns_empty_result(self) -> None:
        detector = FakeDetector({}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)])
        components = await DetectionStage(detector, make_settings()).run(9, b"not an image", {"A > B": "b"})
        self.assertEqual(components, [])
        self.assertEqual(detector.calls, [])

    async def test_debug_files_are_written_when_enabled(self) -> None:
        detector = FakeDetector({}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)])
        with tempfile.TemporaryDirectory() as tmp:
            settings = make_settings(save_debug_files=True, debug_output_dir=tmp)
            await DetectionStage(detector, settings).run(3, make_png(), {"Top Bar > Menu": "menu"})
            [folder] = os.listdir(tmp)
            self.assertTrue(folder.startswith("detection_3_"))
            self.assertEqual(sorted(os.listdir(os.path.join(tmp, folder))), ["top_bar.json", "top_bar.png"])

    async def test_render_failure_keeps_elements_and_status(self) -> None:
        detector = FakeDetector({}, default=[NormalizedBox(0.1, 0.1, 0.4, 0.4)])
        labels = {"Card > Title": "title", "Card > Price": "price"}
        with mock.patch("screenmap.vision.compositor.Image.alpha_composite", side_effect=ValueError("images do not match")):
            [component] = await DetectionStage(detector, make_settings()).run(4, make_png(), labels)

        self.assertIsNone(component.annotated_image)
        self.assertIsNotNone(component.original_image)
        self.assertEqual(component.status, ComponentStatus.SUCCESS)
        self.assertEqual([e.status for e in component.elements], [ElementStatus.DETECTED] * 2)
        self.assertEqual(component.element("Card > Price").bounding_box, BoundingBox(20, 10, 80, 40))
        self.assertFalse(component.to_dict()["has_annotated_image"])

    async def test_all_not_detected_component_still_has_base_image(self) -> None:
        detector = FakeDetector({})
        [component] = await DetectionStage(detector, make_settings()).run(1, make_png(), {"Nav > Back": "back arrow"})
        self.assertEqual(component.status, ComponentStatus.FAILED)
        self.assertIsNotNone(component.annotated_image)


if __name__ == "__main__":
    unittest.main()
