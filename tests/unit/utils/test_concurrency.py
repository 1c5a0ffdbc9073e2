"""
sfc-orchestrator: unit tests for async concurrency helpers.
"""

from __future__ import annotations

import asyncio

import pytest

from sfc_orchestrator.utils.concurrency import (
    CancellationToken,
    cancel_pending,
    gather_first_failure,
    run_with_timeout,
)

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_gather_keeps_submission_order() -> None:
    async def value(delay: float, result: int) -> int:
        await asyncio.sleep(delay)
        return result

    results = await gather_first_failure([value(0.02, 1), value(0.0, 2), value(0.01, 3)])

    assert results == [1, 2, 3]


@pytest.mark.asyncio
async def test_gather_of_nothing_is_empty() -> None:
    assert await gather_first_failure([]) == []


@pytest.mark.asyncio
async def test_first_failure_cancels_the_rest() -> None:
    cancelled: list[str] = []

    async def failing() -> None:
        await asyncio.sleep(0)
        raise LookupError("first")

    async def slow() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append("slow")
            raise

    with pytest.raises(LookupError, match="first"):
        await gather_first_failure([failing(), slow()])

    assert cancelled == ["slow"]


@pytest.mark.asyncio
async def test_cancel_pending_settles_running_tasks() -> None:
    task = asyncio.ensure_future(asyncio.sleep(10))
    finished = asyncio.ensure_future(asyncio.sleep(0))
    await finished

    await cancel_pending([task, finished])

    assert task.cancelled()
    assert not finished.cancelled()


@pytest.mark.asyncio
async def test_run_with_timeout_returns_result() -> None:
    async def quick() -> str:
        return "ok"

    assert await run_with_timeout(quick(), 1.0) == "ok"


@pytest.mark.asyncio
async def test_run_with_timeout_raises_on_expiry() -> None:
    with pytest.raises(TimeoutError):
        await run_with_timeout(asyncio.sleep(10), 0.01)


@pytest.mark.asyncio
async def test_run_with_timeout_honors_cancellation_token() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(asyncio.sleep(10), 5.0, token)
    await canceller
    assert token.is_cancelled


@pytest.mark.asyncio
async def test_run_with_timeout_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_with_timeout(asyncio.sleep(0), 0)
