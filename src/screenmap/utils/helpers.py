"""Helper utility functions for screenmap."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

from ..core.logger import log

T = TypeVar('T')


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    **kwargs: Any
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        func: Coroutine function to retry.
        *args: Arguments to pass to the function.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay between retries in seconds.
        max_delay: Maximum delay between retries in seconds.
        exponential_base: Base for exponential backoff calculation.
        exceptions: Tuple of exceptions to catch and retry.
        **kwargs: Keyword arguments to pass to the function.

    Returns:
        Result of the function call.

    Raises:
        Exception: Last exception if all retries fail.
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except exceptions as e:
            if attempt == max_retries:
                log.error(f"Function failed after {max_retries} retries: {e}")
                raise

            # Calculate delay with exponential backoff
            delay = min(base_delay * (exponential_base ** attempt), max_delay)
            delay += random.uniform(0, base_delay / 2)  # noqa: S311

            log.warning(f"Function failed (attempt {attempt + 1}/{max_retries + 1}): {e}")
            log.info(f"Retrying in {delay:.2f} seconds...")

            await asyncio.sleep(delay)

    raise RuntimeError("retry_with_backoff exhausted without a result")
