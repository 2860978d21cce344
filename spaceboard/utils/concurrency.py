"""Shared concurrency primitives for origin fetches.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with a semaphore around each
   awaitable.  Used to enrich a crew list with per-astronaut detail lookups
   without firing them all at the detail API at once.

2. **InFlightRegistry** -- deduplicates concurrent identical requests.  The
   first caller for a key starts the work as a task; callers arriving while
   it runs await the same task.  Every caller awaits through
   ``asyncio.shield`` so abandoning one caller never cancels the shared
   work (and therefore never cancels tier writes it has already issued).
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Generic, TypeVar

_T = TypeVar("_T")

# Matches the batch size the detail API tolerates without tripping its
# per-second limit.
_DEFAULT_SEMAPHORE_SIZE = 5


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  A fresh semaphore of
        size five is created per call when omitted, so unrelated callers
        never share (or leak) a module-level semaphore.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_SEMAPHORE_SIZE)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class InFlightRegistry(Generic[_T]):
    """Share one running task between concurrent callers of the same key.

    Parameters
    ----------
    linger_s:
        How long a finished task stays registered.  Callers arriving inside
        that window receive the finished task's result without starting new
        work.  ``0`` forgets the task as soon as it completes.
    """

    def __init__(self, linger_s: float = 0.0) -> None:
        self._linger_s = linger_s
        self._tasks: dict[str, asyncio.Future[_T]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[_T]],
        *,
        share: bool = True,
    ) -> _T:
        """Await the registered task for *key*, starting it via *factory* if absent.

        With ``share=False`` a new task is always started and replaces any
        registered one; callers already waiting on the old task still get
        the old result.
        """
        task = self._tasks.get(key) if share else None
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(functools.partial(self._on_done, key))
        return await asyncio.shield(task)

    def _on_done(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._linger_s > 0:
            asyncio.get_running_loop().call_later(self._linger_s, self._forget, key, task)
        else:
            self._forget(key, task)

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        # A replacement task may have been registered meanwhile.
        if self._tasks.get(key) is task:
            del self._tasks[key]
