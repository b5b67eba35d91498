"""Bounded-concurrency scheduling for asynchronous tasks."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Generic, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _PendingTask(Generic[T]):
    sequence: int
    task: Callable[[], Awaitable[T]]
    future: "asyncio.Future[T]"


class ConcurrencyLimiter:
    """Run asynchronous tasks with at most ``limit`` of them in flight.

    Tasks submitted while every slot is busy wait in an unbounded FIFO queue
    and start in submission order as slots free up. Each task settles its own
    future; a failing task never affects the scheduling of any other.
    """

    def __init__(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        self._limit = limit
        self._active = 0
        self._queue: Deque[_PendingTask[Any]] = deque()
        self._sequence = itertools.count()
        self._running: Set["asyncio.Task[None]"] = set()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run(self, task: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """Schedule ``task`` and return a future settled with its outcome.

        Must be called from a coroutine running on the event loop.
        """
        loop = asyncio.get_running_loop()
        pending = _PendingTask(sequence=next(self._sequence), task=task, future=loop.create_future())
        if self._active < self._limit:
            self._start(pending)
        else:
            self._queue.append(pending)
            logger.debug("Queued task #%s (%s waiting)", pending.sequence, len(self._queue))
        return pending.future

    def _start(self, pending: _PendingTask[Any]) -> None:
        self._active += 1
        runner = asyncio.ensure_future(self._execute(pending))
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _execute(self, pending: _PendingTask[Any]) -> None:
        future = pending.future
        try:
            result = await pending.task()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._start_next()

    def _start_next(self) -> None:
        while self._queue and self._active < self._limit:
            self._start(self._queue.popleft())
