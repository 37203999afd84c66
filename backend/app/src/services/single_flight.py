"""Collapse concurrent identical async computations into one shared task."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("verification.single_flight")


class SingleFlight(Generic[T]):
    """Run at most one computation per key at a time.

    Callers arriving while a computation for the same key is outstanding
    await the same task. Waiters go through ``asyncio.shield`` so that a
    caller being cancelled (e.g. the HTTP client disconnected) never cancels
    the shared work; it runs to completion for everyone else.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, "asyncio.Task[T]"] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Return the shared outcome of ``factory()`` for ``key``."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight computation for %s", key)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every waiter already went away.
        if not task.cancelled():
            task.exception()
