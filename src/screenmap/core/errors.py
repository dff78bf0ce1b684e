"""Exception types raised inside pipeline tasks.

Stage task wrappers catch these and turn them into status fields on the
affected record. :class:`FetchError`, :class:`ExtractionError` and
:class:`DecodeError` drop a whole screenshot from the batch.
"""

from __future__ import annotations


class ScreenmapError(Exception):
    """Base class for pipeline errors."""

    def __init__(self, message: str, *, label: str | None = None, component: str | None = None) -> None:
        super().__init__(message)
        self.label = label
        self.component = component


class DecodeError(ScreenmapError):
    """Screenshot bytes could not be read or converted into an image."""


class FetchError(ScreenmapError):
    """A screenshot could not be signed or downloaded from storage."""


class ExtractionError(ScreenmapError):
    """Label extraction for a screenshot produced nothing usable."""


class DetectionError(ScreenmapError):
    """The external detector failed for one label."""


class ScalingError(ScreenmapError):
    """A detection produced a degenerate or unusable pixel box."""


class CompositeError(ScreenmapError):
    """Rendering the annotated image for one category failed."""


class MergeParseError(ScreenmapError):
    """A validator or enricher payload did not have the expected shape."""
