"""Hierarchical label grouping.

Labels look like ``"Cart Item 1 > Quantity Controls > Increase Button"``.
Every label is assigned to the deepest prefix of its path that carries
enough structure to stand as its own category: the top-level segment
always qualifies, and a nested prefix qualifies once it has more than
``min_children`` distinct child paths or more than ``min_children``
labels ending exactly on it.

Example: with ``Header > Title``, ``Header > Icon`` and ``Header > Subtitle``
all three land in ``Header``; a lone ``Footer > Button`` lands in ``Footer``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..core.config import config
from ..core.logger import log


@dataclass
class LabelHierarchyNode:
    """One distinct prefix path in a screenshot's label tree."""

    path: str
    depth: int
    parent_path: Optional[str]
    direct_leaf_count: int = 0
    child_paths: set[str] = field(default_factory=set)

    def qualifies(self, min_children: int) -> bool:
        return self.depth == 1 or len(self.child_paths) > min_children or self.direct_leaf_count > min_children


def split_label(label: str, separator: str | None = None) -> list[str]:
    """Split a label into its non-empty, whitespace-trimmed segments.

    A label with no usable segment is kept whole as a single segment.
    """
    separator = (separator or config.label_separator).strip()
    segments = [part.strip() for part in label.split(separator)]
    segments = [part for part in segments if part]
    return segments or [label]


def _join(segments: list[str], separator: str | None) -> str:
    separator = separator or config.label_separator
    return separator.join(segments)


def build_hierarchy(labels: Iterable[str], separator: str | None = None) -> dict[str, LabelHierarchyNode]:
    """Register a node for every prefix of every label."""
    hierarchy: dict[str, LabelHierarchyNode] = {}

    for label in labels:
        parts = split_label(label, separator)
        for i in range(1, len(parts) + 1):
            path = _join(parts[:i], separator)
            parent_path = _join(parts[: i - 1], separator) if i > 1 else None

            node = hierarchy.get(path)
            if node is None:
                node = hierarchy[path] = LabelHierarchyNode(path=path, depth=i, parent_path=parent_path)

            if i == len(parts):
                node.direct_leaf_count += 1

            if parent_path is not None:
                hierarchy[parent_path].child_paths.add(path)

    return hierarchy


def determine_hierarchical_groups(
    labels: Iterable[str],
    separator: str | None = None,
    min_children: int | None = None,
) -> dict[str, str]:
    """Map every label to its category path.

    The output has exactly one key per distinct input label and is stable
    for a given label set: categories depend only on node counts, never on
    set iteration order.
    """
    labels = list(labels)
    min_children = config.category_min_children if min_children is None else min_children
    hierarchy = build_hierarchy(labels, separator)

    label_to_category: dict[str, str] = {}
    for label in labels:
        parts = split_label(label, separator)
        best = _join(parts[:1], separator)
        for i in range(2, len(parts) + 1):
            node = hierarchy[_join(parts[:i], separator)]
            if node.qualifies(min_children):
                best = node.path
        label_to_category[label] = best

    counts = Counter(label_to_category.values())
    log.debug(f"Created {len(counts)} groupings from {len(label_to_category)} elements: {dict(counts)}")
    return label_to_category


def group_labels(label_to_category: dict[str, str]) -> dict[str, list[str]]:
    """Invert a label->category map, keeping first-seen order."""
    groups: dict[str, list[str]] = {}
    for label, category in label_to_category.items():
        groups.setdefault(category, []).append(label)
    return groups
