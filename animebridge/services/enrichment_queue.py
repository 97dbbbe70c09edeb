"""Single-worker request queue and poster cache for the enrichment provider."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from contextlib import suppress
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
QueuedTask = Callable[[], Awaitable[Any]]


class PosterCache:
    """Poster URLs keyed by normalised title.

    Only primitive strings are stored. Writes keep the first value seen for
    a key; concurrent writers compute the same URL, so losing a race is
    harmless.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def set(self, key: str, poster_url: str) -> str:
        if not key or not poster_url:
            return poster_url
        return self._entries.setdefault(key, poster_url)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class EnrichmentQueue:
    """FIFO queue drained by exactly one worker task.

    Each submitted task runs to completion before the next one starts, and
    at least ``delay_seconds`` elapse between the end of one task and the
    start of the next. ``submit`` never blocks; it returns a future resolved
    with the task's result (or exception).
    """

    def __init__(
        self,
        *,
        delay_seconds: float = 0.4,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self._delay = delay_seconds
        self._clock = clock
        self._pending: deque[tuple[QueuedTask, asyncio.Future[Any]]] = deque()
        self._worker: asyncio.Task[None] | None = None
        self._last_finished: float | None = None
        self._closed = False

    @property
    def delay_seconds(self) -> float:
        return self._delay

    @property
    def pending(self) -> int:
        """Number of tasks waiting to start."""

        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, task: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Append ``task`` to the queue and return a future for its result."""

        if self._closed:
            raise RuntimeError("Enrichment queue is closed")
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._pending.append((task, future))
        if not self.running:
            self._worker = asyncio.create_task(self._drain())
        return future

    async def aclose(self) -> None:
        """Stop the worker and cancel every task that has not started."""

        self._closed = True
        while self._pending:
            _, future = self._pending.popleft()
            future.cancel()
        if self._worker is None:
            return
        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def _drain(self) -> None:
        while self._pending:
            await self._wait_for_slot()
            if not self._pending:
                break
            task, future = self._pending.popleft()
            if future.cancelled():
                continue
            try:
                result = await task()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:
                logger.warning("Queued enrichment task failed: %s", exc)
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._last_finished = self._clock()

    async def _wait_for_slot(self) -> None:
        if self._last_finished is None:
            return
        remaining = self._delay - (self._clock() - self._last_finished)
        if remaining > 0:
            await asyncio.sleep(remaining)
