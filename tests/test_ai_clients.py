import json
import unittest
from types import SimpleNamespace

from screenmap.ai.enricher import MetadataEnricher
from screenmap.ai.extractor import LabelExtractor, component_names
from screenmap.ai.moondream_client import MoondreamDetector, parse_detections
from screenmap.ai.openai_client import OpenAIClient, encode_data_url
from screenmap.ai.response_parser import parse_json_payload
from screenmap.ai.validator import AccuracyValidator
from screenmap.core.errors import DetectionError
from screenmap.core.prompt_log import PromptTrackingContext, PromptType
from screenmap.vision.models import NormalizedBox

from pipeline_fakes import make_settings


class ResponseParserTests(unittest.TestCase):
    def test_fenced_json_with_trailing_commas(self) -> None:
        text = '```json\n[{"label": "A", "accuracy": 80,},]\n```'
        self.assertEqual(parse_json_payload(text), [{"label": "A", "accuracy": 80}])

    def test_plain_json_object(self) -> None:
        self.assertEqual(parse_json_payload('{"Header": {"states": []}}'), {"Header": {"states": []}})

    def test_unstructured_text_is_none(self) -> None:
        self.assertIsNone(parse_json_payload("The boxes look correct to me."))
        self.assertIsNone(parse_json_payload(""))
        self.assertIsNone(parse_json_payload(None))

    def test_data_url(self) -> None:
        self.assertEqual(encode_data_url(b"abc"), "data:image/png;base64,YWJj")


class _FakeCompletions:
    """Replies with ``contents`` in turn, repeating the last one."""

    def __init__(self, *contents: str) -> None:
        self.contents = list(contents)
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        content = self.contents[min(len(self.requests), len(self.contents)) - 1]
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30, total_tokens=150),
        )


def _openai(*contents: str) -> tuple[OpenAIClient, _FakeCompletions]:
    completions = _FakeCompletions(*contents)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIClient(make_settings(openai_model="test-model"), client=fake), completions


class OpenAIServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_validator_sends_image_and_records_usage(self) -> None:
        client, completions = _openai('```json\n[{"label": "A", "accuracy": 90}]\n```')
        context = PromptTrackingContext(batch_id=1, screenshot_id=2)

        payload = await AccuracyValidator(client).validate(b"img", '[{"label": "A"}]', context)

        self.assertEqual(payload, [{"label": "A", "accuracy": 90}])
        request = completions.requests[0]
        self.assertEqual(request["model"], "test-model")
        user_content = request["messages"][1]["content"]
        self.assertIn('[{"label": "A"}]', user_content[0]["text"])
        self.assertEqual(user_content[1]["image_url"]["url"], encode_data_url(b"img"))

        [interaction] = context.interactions
        self.assertEqual(interaction.prompt_type, PromptType.ACCURACY_VALIDATION)
        self.assertEqual(interaction.usage.input, 120)
        self.assertEqual(interaction.usage.output, 30)

    async def test_enricher_tolerates_unstructured_reply(self) -> None:
        client, _ = _openai("Sorry, I cannot describe this component.")
        context = PromptTrackingContext()
        self.assertIsNone(await MetadataEnricher(client).extract(b"img", "{}", context))
        self.assertEqual(context.interactions[0].prompt_type, PromptType.METADATA_EXTRACTION)

    async def test_extractor_runs_three_passes(self) -> None:
        client, completions = _openai(
            '[{"component_name": "Header", "description": "top bar"}, {"component_name": 4}]',
            '[{"label": "Header > Menu", "description": "menu icon"}]',
            '```json\n{"Header > Menu": "three horizontal lines, top left"}\n```',
        )
        context = PromptTrackingContext(batch_id=1, screenshot_id=3)

        payload = await LabelExtractor(client).extract_labels(b"img", context)

        self.assertEqual(payload, {"Header > Menu": "three horizontal lines, top left"})
        self.assertEqual(
            [i.prompt_type for i in context.interactions],
            [PromptType.COMPONENT_EXTRACTION, PromptType.ELEMENT_EXTRACTION, PromptType.ANCHOR_LABELING],
        )
        element_request = completions.requests[1]["messages"][1]["content"][0]["text"]
        self.assertIn("Header", element_request)
        anchor_request = completions.requests[2]["messages"][1]["content"][0]["text"]
        self.assertIn('"label": "Header > Menu"', anchor_request)
        self.assertNotEqual(completions.requests[0]["messages"][0], completions.requests[2]["messages"][0])

    def test_component_names_skip_malformed_entries(self) -> None:
        self.assertEqual(component_names([{"component_name": "Nav", "description": "x"}, {"description": "y"}, "z"]), ["Nav"])
        self.assertEqual(component_names({"component_name": "Nav"}), [])

    def test_missing_api_key_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            OpenAIClient(make_settings(openai_api_key=""))


class _FakeResponse:
    def __init__(self, status: int, payload) -> None:
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self.payload

    async def text(self):
        return json.dumps(self.payload)


class _FakeSession:
    def __init__(self, *responses: _FakeResponse) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def post(self, url, json=None, headers=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        return self.responses.pop(0)


class MoondreamDetectorTests(unittest.IsolatedAsyncioTestCase):
    async def test_detect_returns_normalized_boxes(self) -> None:
        session = _FakeSession(
            _FakeResponse(200, {"request_id": "r1", "objects": [{"x_min": 0.1, "y_min": 0.2, "x_max": 0.3, "y_max": 0.4}]})
        )
        detector = MoondreamDetector(make_settings(moondream_api_key="secret"), session=session)
        context = PromptTrackingContext(batch_id=1, screenshot_id=1)

        boxes = await detector.detect(b"img", "blue checkout button", context)

        self.assertEqual(boxes, [NormalizedBox(0.1, 0.2, 0.3, 0.4)])
        request = session.requests[0]
        self.assertEqual(request["headers"]["X-Moondream-Auth"], "secret")
        self.assertEqual(request["json"]["object"], "blue checkout button")
        self.assertTrue(request["json"]["image_url"].startswith("data:image/png;base64,"))
        self.assertEqual(context.interactions[0].prompt_type, PromptType.VLM_LABELING)

    async def test_client_error_raises_detection_error(self) -> None:
        detector = MoondreamDetector(make_settings(), session=_FakeSession(_FakeResponse(401, {"error": "bad key"})))
        with self.assertRaises(DetectionError):
            await detector.detect(b"img", "anything")

    def test_parse_detections_rejects_bad_shapes(self) -> None:
        self.assertEqual(parse_detections({"objects": []}), [])
        with self.assertRaises(DetectionError):
            parse_detections({"error": "nope"})
        with self.assertRaises(DetectionError):
            parse_detections({"objects": [{"x_min": 0.1}]})


if __name__ == "__main__":
    unittest.main()
