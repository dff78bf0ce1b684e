"""Signed-URL cache with explicit expiry and an LRU bound."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..core.config import config
from ..core.logger import log


@dataclass(slots=True)
class _Entry:
    url: str
    expires_at: float


class SignedUrlCache:
    """Maps storage paths to signed URLs until their expiry.

    Reads check expiry before reuse; writes always refresh it. When more
    than ``max_entries`` paths are cached the least recently used one is
    dropped. Population is idempotent, so no locking is done.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = config.signed_url_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_entries = config.signed_url_cache_size if max_entries is None else max_entries
        if self.ttl_seconds <= 0 or self.max_entries < 1:
            raise ValueError("Cache TTL and size must be positive")
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def is_expired(self, path: str) -> bool:
        """True when ``path`` is missing or past its expiry."""
        entry = self._entries.get(path)
        return entry is None or self._clock() >= entry.expires_at

    def get(self, path: str) -> Optional[str]:
        if self.is_expired(path):
            self._entries.pop(path, None)
            return None
        self._entries.move_to_end(path)
        return self._entries[path].url

    def set(self, path: str, url: str) -> None:
        self._entries[path] = _Entry(url=url, expires_at=self._clock() + self.ttl_seconds)
        self._entries.move_to_end(path)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug(f"Signed URL cache full; evicted {evicted}")

    def invalidate(self, path: str) -> None:
        self._entries.pop(path, None)

    async def get_or_create(self, path: str, signer: Callable[[str], Awaitable[str]]) -> str:
        """Return the cached URL for ``path``, signing and caching a new one if needed."""
        url = self.get(path)
        if url is not None:
            return url
        url = await signer(path)
        self.set(path, url)
        return url
