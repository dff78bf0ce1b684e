"""Accuracy validation stage.

An external judge looks at each component's annotated image and returns,
per label, an accuracy score, an optional corrected box, a visibility flag
and an explanation. Those verdicts are merged into the existing element
records by exact label match.
"""

from __future__ import annotations

import json
from functools import partial
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from ..core.config import Config, config
from ..core.errors import MergeParseError
from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext
from ..vision.models import BoundingBox
from .executor import BoundedExecutor
from .models import ComponentDetectionResult, ElementDetectionItem, ElementStatus, Validator

_BOX_STATUSES = (ElementStatus.DETECTED, ElementStatus.OVERWRITE)


@dataclass(slots=True)
class AccuracyVerdict:
    """One validated payload entry with neutral defaults filled in."""

    label: str
    status: ElementStatus
    accuracy: float
    hidden: bool
    explanation: str
    suggested_box: Optional[BoundingBox]


def _parse_box(raw: Any, label: str) -> Optional[BoundingBox]:
    if raw is None:
        return None
    try:
        if isinstance(raw, Mapping):
            return BoundingBox.from_mapping(raw)
        if isinstance(raw, Sequence) and not isinstance(raw, str) and len(raw) == 4:
            return BoundingBox(*(int(round(float(v))) for v in raw))
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        log.warning(f"Ignoring malformed suggested coordinates for '{label}': {exc}")
        return None
    log.warning(f"Ignoring unsupported suggested coordinates for '{label}': {raw!r}")
    return None


def _parse_accuracy(raw: Any) -> float:
    if isinstance(raw, bool):
        return 0.0
    try:
        return float(raw) if raw is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _parse_hidden(raw: Any) -> bool:
    """Only a JSON ``true`` or the string ``"true"`` hides an element."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() == "true"
    return False


def parse_verdict(entry: Any) -> AccuracyVerdict:
    """Normalize one payload entry. Raises :class:`MergeParseError` without a usable label."""
    if not isinstance(entry, Mapping) or not isinstance(entry.get("label"), str):
        raise MergeParseError(f"Validation entry without a label: {entry!r}")

    label = entry["label"]
    status = ElementStatus.parse(entry.get("status"))
    if status is None:
        if entry.get("status") is not None:
            log.warning(f"Unknown validation status {entry.get('status')!r} for '{label}'")
        status = ElementStatus.ERROR

    explanation = entry.get("explanation")
    return AccuracyVerdict(
        label=label,
        status=status,
        accuracy=_parse_accuracy(entry.get("accuracy")),
        hidden=_parse_hidden(entry.get("hidden")),
        explanation=explanation if isinstance(explanation, str) else "",
        suggested_box=_parse_box(entry.get("suggested_coordinates"), label),
    )


def apply_verdict(element: ElementDetectionItem, verdict: AccuracyVerdict) -> None:
    """Overwrite an element's validation fields and reconcile its accepted box.

    ``bounding_box`` holds the box currently accepted for the element: an
    ``Overwrite`` verdict adopts the suggested box, a ``Detected`` verdict
    keeps the detected one, and any other status clears it. Whenever the
    accepted box changes, the detector's box is kept in ``original_box``.
    """
    new_box = element.bounding_box
    status = verdict.status
    if status == ElementStatus.OVERWRITE:
        new_box = verdict.suggested_box or element.bounding_box
    elif status == ElementStatus.DETECTED:
        new_box = element.bounding_box or verdict.suggested_box
    else:
        new_box = None

    if status in _BOX_STATUSES and new_box is None:
        log.warning(f"'{element.label}' marked {status.value} without any box; recording as Error")
        status = ElementStatus.ERROR

    if new_box != element.bounding_box and element.original_box is None:
        element.original_box = element.bounding_box

    element.status = status
    element.accuracy_score = verdict.accuracy
    element.hidden = verdict.hidden
    element.explanation = verdict.explanation
    element.suggested_box = verdict.suggested_box
    element.bounding_box = new_box


def merge_accuracy(elements: list[ElementDetectionItem], payload: Any) -> int:
    """Merge a validator payload into ``elements`` in place.

    Only elements whose label exactly matches a payload entry are touched.
    A payload that is not a list leaves every element as it was. Returns
    the number of elements updated.
    """
    if not isinstance(payload, list):
        log.warning(f"Invalid validation payload ({type(payload).__name__}); elements left unchanged")
        return 0

    by_label = {element.label: element for element in elements}
    updated = 0
    for entry in payload:
        try:
            verdict = parse_verdict(entry)
        except MergeParseError as exc:
            log.warning(str(exc))
            continue

        element = by_label.get(verdict.label)
        if element is None:
            log.debug(f"Validation entry for unknown label '{verdict.label}' ignored")
            continue

        apply_verdict(element, verdict)
        updated += 1
    return updated


class AccuracyValidationStage:
    """Sends each component's annotated image to the validator and merges the verdicts."""

    def __init__(self, validator: Validator, settings: Config = config) -> None:
        self.validator = validator
        self.settings = settings

    async def validate_component(
        self,
        component: ComponentDetectionResult,
        context: Optional[PromptTrackingContext] = None,
    ) -> int:
        if component.annotated_image is None:
            log.warning(f"Component '{component.component_name}' has no annotated image; skipping validation")
            return 0

        elements_json = json.dumps([element.to_payload() for element in component.elements])
        payload = await self.validator.validate(component.annotated_image, elements_json, context)
        updated = merge_accuracy(component.elements, payload)
        log.debug(
            f"[Screenshot {component.screenshot_id}] Validated '{component.component_name}': "
            f"{updated}/{len(component.elements)} elements updated"
        )
        return updated

    async def run(
        self,
        components: list[ComponentDetectionResult],
        contexts: Optional[Mapping[int, PromptTrackingContext]] = None,
    ) -> list[ComponentDetectionResult]:
        """Validate every component; a failing call leaves that component as it was."""
        contexts = contexts or {}
        log.log_stage("accuracy_validation", {"components": len(components)})

        executor = BoundedExecutor(self.settings.validation_concurrency, name="validation")
        outcomes = await executor.run(
            [
                partial(self.validate_component, component, contexts.get(component.screenshot_id))
                for component in components
            ]
        )

        for component, outcome in zip(components, outcomes):
            if not outcome.ok:
                log.error(f"Error validating component '{component.component_name}': {outcome.error}")

        log.info(f"Completed accuracy validation for {len(components)} components")
        return components
