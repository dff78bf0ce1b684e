"""Instruction templates for the extraction, validation and enrichment models."""

COMPONENT_EXTRACTION_PROMPT = """\
You are a UI analyst. Identify the high-level components of the UI
screenshot (navigation bars, cards, forms, lists, footers and so on).

Return a JSON array of objects, each with "component_name" and
"description". Do not list individual buttons or icons here.

Return only the JSON array.
"""

ELEMENT_EXTRACTION_PROMPT = """\
You are a UI analyst. The user message lists the high-level components of
the screenshot. For each component, list the visible elements it contains.

Return a JSON array of objects, each with "label" written as
"Component > Element" (deeper nesting uses the same separator) and
"description" of what the element looks like.

Return only the JSON array.
"""

ANCHOR_LABELING_PROMPT = """\
You write descriptions for a visual grounding model that finds one object
at a time. The user message lists UI elements as JSON. For each one, write
a short visual description (color, shape, text on it, position) that
singles it out on the screenshot.

Return a JSON object mapping each unchanged label to its description.

Return only the JSON object.
"""

ACCURACY_VALIDATION_PROMPT = """\
You are a UI bounding box verifier. The image shows a UI screenshot with
bounding boxes already drawn. The user message lists each box as JSON with
its label, description, status and bounding_box.

For every item return an object with:
- "label": unchanged
- "accuracy": 0-100, how well the box matches the described element
- "hidden": true when the box is wrong and no correction is possible
- "suggested_coordinates": {x_min, y_min, x_max, y_max} in pixels, only when
  accuracy is below 50 and a correction is possible
- "status": "Overwrite" when suggested_coordinates are given, otherwise the
  original status
- "explanation": one short sentence

Return only the JSON array.
"""

METADATA_EXTRACTION_PROMPT = """\
You are a UI pattern analyst. The image shows a UI screenshot; the user
message names one component and lists its elements.

Return a JSON object keyed by the component name. Its value holds
"patternName", "facetTags", "states", "interaction", "userFlowImpact",
"flowPosition" and "componentDescription" for the component, plus one key per
element label whose value holds the same fields for that element.

Return only the JSON object.
"""


def validation_user_prompt(elements_json: str) -> str:
    return f"Bounding boxes to verify:\n{elements_json}"


def metadata_user_prompt(payload_json: str) -> str:
    return f"Component to describe:\n{payload_json}"


def element_user_prompt(component_names: list[str]) -> str:
    return "Components on this screen:\n" + "\n".join(component_names)


def anchor_user_prompt(elements_json: str) -> str:
    return f"Elements to describe:\n{elements_json}"
