"""Bounded concurrent fan-out.

:func:`concurrent_collect_with` runs an async worker over every input with at
most ``size`` workers in flight and gathers the non-``None`` results. A
failing worker never affects its siblings: its exception is logged and its
result is dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from costscope.observability.logging import get_logger

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741

_log = get_logger("util.worker")


async def concurrent_collect_with(
    size: int,
    worker: Callable[[I], Awaitable[O | None]],
    inputs: Iterable[I],
) -> list[O]:
    """Run *worker* over *inputs* with bounded concurrency.

    Args:
        size: Maximum number of concurrently running workers; values below 1
            are treated as 1.
        worker: Async callable invoked once per input.
        inputs: Inputs to process.

    Returns:
        Results of every worker that returned a non-``None`` value. Order is
        unspecified. The call returns only after every input was attempted.
    """
    semaphore = asyncio.Semaphore(max(1, size))

    async def _run(item: I) -> O | None:
        async with semaphore:
            try:
                return await worker(item)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                _log.warning("worker_failed", error=str(exc), error_type=type(exc).__name__)
                return None

    results = await asyncio.gather(*(_run(item) for item in inputs))
    return [r for r in results if r is not None]
