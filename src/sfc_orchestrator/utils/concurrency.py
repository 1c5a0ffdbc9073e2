"""Async concurrency primitives used by the build driver and hook bus."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


async def gather_first_failure(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Await a batch as one all-or-nothing barrier.

    Results keep submission order. The first exception propagates; tasks still
    pending at that point are cancelled and awaited so none of them leak.
    """
    tasks: list[asyncio.Future[T]] = [asyncio.ensure_future(item) for item in awaitables]
    if not tasks:
        return []

    pending: set[asyncio.Future[T]] = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            failure: BaseException | None = None
            for task in (item for item in tasks if item in done):
                if task.cancelled():
                    failure = failure or asyncio.CancelledError("batch task cancelled")
                    continue
                exc = task.exception()
                if exc is not None and failure is None:
                    failure = exc
            if failure is not None:
                raise failure
    except BaseException:
        await cancel_pending(pending)
        raise

    return [task.result() for task in tasks]


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Run ``coroutine`` with timeout and cooperative cancellation support."""
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError("operation cancelled")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        if cancel_wait_task in done and token.is_cancelled:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            raise asyncio.CancelledError("operation cancelled")

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def cancel_pending(tasks: Iterable[asyncio.Future[object]]) -> None:
    """Cancel every task in ``tasks`` that is still running and wait for it to settle."""
    items = list(tasks)
    for task in items:
        if task.done() and not task.cancelled():
            task.exception()
    pending = [task for task in items if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        with suppress(Exception):
            await asyncio.gather(*pending, return_exceptions=True)


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects that were never scheduled so CPython does not
    # emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "cancel_pending",
    "gather_first_failure",
    "run_with_timeout",
]
