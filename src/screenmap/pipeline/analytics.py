"""In-memory batch analytics built from recorded prompt interactions."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional

from ..core.prompt_log import PromptInteraction, PromptType
from .models import ComponentDetectionResult


@dataclass(slots=True)
class PromptTypeSummary:
    """Totals for one kind of external call within a batch."""

    prompt_type: str
    count: int = 0
    total_seconds: float = 0.0
    avg_seconds: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    avg_output_tokens: float = 0.0


@dataclass(slots=True)
class BatchAnalytics:
    batch_id: Optional[int]
    total_processing_seconds: float = 0.0
    total_elements_detected: int = 0
    avg_seconds_per_element: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    prompt_types: list[PromptTypeSummary] = field(default_factory=list)
    component_status_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _summarize_type(prompt_type: PromptType, interactions: list[PromptInteraction]) -> PromptTypeSummary:
    summary = PromptTypeSummary(prompt_type=prompt_type.value, count=len(interactions))
    summary.total_seconds = round(sum(i.duration_ms for i in interactions) / 1000, 3)
    summary.input_tokens = sum(i.usage.input or 0 for i in interactions)
    summary.output_tokens = sum(i.usage.output or 0 for i in interactions)
    if interactions:
        summary.avg_seconds = round(summary.total_seconds / len(interactions), 3)
        summary.avg_output_tokens = round(summary.output_tokens / len(interactions), 2)
    return summary


def summarize_batch(
    batch_id: Optional[int],
    components: Iterable[ComponentDetectionResult],
    interactions: Iterable[PromptInteraction],
) -> BatchAnalytics:
    """Aggregate timing, token and status figures for one batch.

    Processing time is the sum of interaction durations; one detector
    interaction corresponds to one element.
    """
    interactions = list(interactions)
    by_type: dict[PromptType, list[PromptInteraction]] = {}
    for interaction in interactions:
        by_type.setdefault(interaction.prompt_type, []).append(interaction)

    analytics = BatchAnalytics(batch_id=batch_id)
    analytics.prompt_types = [
        _summarize_type(prompt_type, by_type[prompt_type]) for prompt_type in PromptType if prompt_type in by_type
    ]
    analytics.total_processing_seconds = round(sum(i.duration_ms for i in interactions) / 1000, 3)
    analytics.total_elements_detected = len(by_type.get(PromptType.VLM_LABELING, []))
    if analytics.total_elements_detected:
        analytics.avg_seconds_per_element = round(
            analytics.total_processing_seconds / analytics.total_elements_detected, 3
        )
    analytics.total_input_tokens = sum(s.input_tokens for s in analytics.prompt_types)
    analytics.total_output_tokens = sum(s.output_tokens for s in analytics.prompt_types)
    analytics.component_status_counts = dict(Counter(c.status.value for c in components))
    return analytics
