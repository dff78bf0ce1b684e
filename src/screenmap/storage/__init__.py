"""Screenshot loading, signed-URL caching and result persistence."""

from .cache import SignedUrlCache
from .loader import ScreenshotLoader
from .store import JsonResultStore, ResultStore

__all__ = ["JsonResultStore", "ResultStore", "ScreenshotLoader", "SignedUrlCache"]
