"""Async fan-out/fan-in helpers used by provisioning and the CLI."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

T = TypeVar("T")


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run awaitables with bounded concurrency and yield results as they finish.

    The first failure cancels every sibling still pending and is re-raised to
    the consumer. Siblings that already finished keep their effects.
    """

    max_concurrency: int
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def run(self, awaitables: Iterable[Awaitable[T]]) -> AsyncIterator[T]:
        tasks: set[asyncio.Task[T]] = {
            asyncio.create_task(self._run_one(awaitable)) for awaitable in awaitables
        }

        try:
            while tasks:
                done, tasks = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task.cancelled():
                        raise asyncio.CancelledError("worker task cancelled")
                    exc = task.exception()
                    if exc is not None:
                        raise exc
                    yield task.result()
        finally:
            await _cancel_all(tasks)

    async def gather(self, awaitables: Iterable[Awaitable[T]]) -> list[T]:
        """Drain :meth:`run` and return results in completion order."""

        return [result async for result in self.run(awaitables)]

    async def _run_one(self, awaitable: Awaitable[T]) -> T:
        async with self._semaphore:
            return await awaitable


async def run_with_timeout(awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await ``awaitable`` for at most ``timeout_seconds``.

    Raises ``TimeoutError`` once the deadline passes; the pending work is
    cancelled first. Nothing is done to external resources (such as child
    processes) the awaitable was watching.
    """
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(awaitable)
        raise ValueError("timeout_seconds must be > 0")

    task: asyncio.Task[T] = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    if task in done:
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")


async def _cancel_all(tasks: set[asyncio.Task[T]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Raw coroutine objects rejected before scheduling must be closed so CPython
    # does not emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = ["WorkerPool", "run_with_timeout"]
