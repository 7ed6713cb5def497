"""Race scheduler — run two operations, keep the first to finish.

Both operations run as tasks on the current event loop. As soon as one
completes, the other is cancelled at its next suspension point and
awaited until it has unwound. A cancelled operation that had a
transaction open leaves it uncommitted; the pool discards it on
release.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class RaceOutcome:
    """Which side finished first and what it returned."""

    winner: str
    value: Any


async def race(
    first: Awaitable[Any],
    second: Awaitable[Any],
    names: tuple[str, str] = ("first", "second"),
) -> RaceOutcome:
    """Run ``first`` and ``second`` concurrently; resolve on first completion.

    If the completed side raised, its exception propagates unchanged.
    When both finish in the same loop iteration, argument order decides
    the winner, and an exception from either side takes precedence over
    a normal result.

    Args:
        first: Awaitable for the first contender.
        second: Awaitable for the second contender.
        names: Labels reported in the outcome and logs.

    Returns:
        RaceOutcome naming the winner and carrying its result.
    """
    tasks = [
        asyncio.ensure_future(first),
        asyncio.ensure_future(second),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Let the losers unwind, including their connection release.
        await asyncio.gather(*tasks, return_exceptions=True)

    finished = [(name, task) for name, task in zip(names, tasks) if task in done]
    for name, task in finished:
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Race side failed", side=name)
            raise task.exception()

    name, task = finished[0]
    logger.debug("Race resolved", winner=name)
    return RaceOutcome(winner=name, value=task.result())
