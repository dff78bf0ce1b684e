"""Screenshot loading from object storage through signed URLs."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp

from ..core.config import Config, config
from ..core.errors import FetchError
from ..core.logger import log
from ..pipeline.models import ScreenshotInput
from .cache import SignedUrlCache

Signer = Callable[[str], Awaitable[str]]


class ScreenshotLoader:
    """Resolves storage paths to signed URLs and downloads the image bytes.

    Signed URLs go through a :class:`SignedUrlCache`, so a path seen again
    before its expiry is not signed twice. Use as an async context manager,
    or call :meth:`close` when done.
    """

    def __init__(
        self,
        signer: Signer,
        cache: Optional[SignedUrlCache] = None,
        settings: Config = config,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.signer = signer
        self.cache = cache if cache is not None else SignedUrlCache(
            settings.signed_url_ttl_seconds, settings.signed_url_cache_size
        )
        self.settings = settings
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> ScreenshotLoader:
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.fetch_timeout)
            )
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None

    async def signed_url(self, path: str) -> str:
        try:
            return await self.cache.get_or_create(path, self.signer)
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(f"Failed to sign {path}: {exc}") from exc

    async def fetch_bytes(self, url: str) -> bytes:
        """Download ``url``. Raises :class:`FetchError` on any HTTP or network failure."""
        try:
            async with self._get_session().get(url) as response:
                if response.status >= 400:
                    raise FetchError(f"HTTP {response.status} fetching screenshot")
                data = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FetchError(f"Error fetching screenshot: {exc}") from exc
        if not data:
            raise FetchError("Empty screenshot download")
        return data

    async def load(self, screenshot: ScreenshotInput) -> None:
        """Fill in the signed URL and, when missing, the image bytes of ``screenshot``."""
        if screenshot.storage_path:
            screenshot.screenshot_url = await self.signed_url(screenshot.storage_path)
        if screenshot.image_bytes:
            return
        if not screenshot.screenshot_url:
            raise FetchError(f"Screenshot {screenshot.screenshot_id} has neither image bytes nor a URL")

        screenshot.image_bytes = await self.fetch_bytes(screenshot.screenshot_url)
        log.debug(
            f"Fetched buffer for screenshot ID {screenshot.screenshot_id} ({len(screenshot.image_bytes)} bytes)"
        )
