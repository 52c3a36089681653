"""Run async jobs with bounded concurrency.

The first failing job stops the batch: jobs that have not started yet are
skipped and running ones are cancelled.  Errors are combined with
:meth:`CombinedError.join`.  Exceptions that are not :class:`ConnectorError`
are wrapped in :class:`PanicRecoveredError`.

Usage::

    await do(4, *[functools.partial(fetch, name) for name in names])
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from connectors_sdk.errors import (
    CombinedError,
    ConnectorError,
    OperationCancelledError,
    PanicRecoveredError,
)

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


async def do(max_concurrent: int, *jobs: Job) -> None:
    """Run *jobs*, at most *max_concurrent* at a time (``< 1`` means no limit)."""
    if not jobs:
        return

    limit = max_concurrent if max_concurrent >= 1 else len(jobs)
    semaphore = asyncio.Semaphore(limit)
    stop = asyncio.Event()
    failures: list[BaseException] = []
    cancellations: list[BaseException] = []
    tasks: list[asyncio.Task[None]] = []

    def _stop_others(current: asyncio.Task[None] | None) -> None:
        if stop.is_set():
            return
        stop.set()
        for task in tasks:
            if task is not current and not task.done():
                task.cancel()

    async def run(job: Job) -> None:
        try:
            async with semaphore:
                if stop.is_set():
                    cancellations.append(OperationCancelledError("job skipped: batch stopped"))
                    return
                await job()
        except asyncio.CancelledError:
            if not stop.is_set():
                raise
            cancellations.append(OperationCancelledError("job cancelled: batch stopped"))
        except ConnectorError as exc:
            failures.append(exc)
            _stop_others(asyncio.current_task())
        except Exception as exc:
            logger.exception("Job failed unexpectedly")
            err = PanicRecoveredError(f"recovered from unexpected failure: {exc!r}")
            err.__cause__ = exc
            failures.append(err)
            _stop_others(asyncio.current_task())

    tasks.extend(asyncio.ensure_future(run(job)) for job in jobs)
    # Tasks cancelled before their first step never enter run().
    for outcome in await asyncio.gather(*tasks, return_exceptions=True):
        if isinstance(outcome, asyncio.CancelledError):
            if not stop.is_set():
                raise outcome
            cancellations.append(OperationCancelledError("job cancelled before start: batch stopped"))

    err = CombinedError.join(failures or cancellations)
    if err is not None:
        raise err
