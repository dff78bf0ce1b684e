"""Bounded fan-out/fan-in for independent async tasks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from ..core.logger import log

T = TypeVar("T")


@dataclass(slots=True)
class Outcome(Generic[T]):
    """Settled result of one task: a value or the exception it raised."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedExecutor:
    """Runs task factories with at most ``limit`` in flight.

    Results come back in input order whatever the completion order. A task
    that raises is captured as a failed :class:`Outcome`; its siblings keep
    running and are scheduled as if nothing happened.
    """

    def __init__(self, limit: int, name: str = "tasks") -> None:
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self.limit = limit
        self.name = name

    async def run(self, factories: Sequence[Callable[[], Awaitable[T]]]) -> list[Outcome[T]]:
        semaphore = asyncio.Semaphore(self.limit)

        async def _guarded(index: int, factory: Callable[[], Awaitable[T]]) -> Outcome[T]:
            async with semaphore:
                try:
                    return Outcome(value=await factory())
                except Exception as exc:
                    log.warning(f"{self.name}: task {index} failed: {exc!r}")
                    return Outcome(error=exc)

        outcomes = await asyncio.gather(*(_guarded(i, f) for i, f in enumerate(factories)))
        failed = sum(1 for o in outcomes if not o.ok)
        log.debug(f"{self.name}: {len(outcomes)} tasks settled ({failed} failed, limit {self.limit})")
        return list(outcomes)


async def run_bounded(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
    name: str = "tasks",
) -> list[Outcome[T]]:
    """Shorthand for ``BoundedExecutor(limit, name).run(factories)``."""
    return await BoundedExecutor(limit, name).run(factories)
