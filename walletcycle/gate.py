"""Bounded fan-out for coroutine tasks."""

import asyncio
from typing import Any, Awaitable, Callable, List, Sequence

Task = Callable[[], Awaitable[Any]]


async def run_bounded(max_concurrent: int, tasks: Sequence[Task]) -> List[Any]:
    """Run zero-argument coroutine functions with at most ``max_concurrent`` in flight.

    Results are returned in task order. A task that raises puts its exception
    in its slot instead of cancelling the others.
    """
    if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent <= 0:
        raise ValueError(f"max_concurrent must be a positive integer, got {max_concurrent!r}")

    semaphore = asyncio.Semaphore(max_concurrent)

    async def guarded(task: Task):
        async with semaphore:
            return await task()

    return await asyncio.gather(*[guarded(t) for t in tasks], return_exceptions=True)
