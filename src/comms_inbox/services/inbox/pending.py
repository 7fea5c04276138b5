"""
Outstanding Work Tracking.

Every triggering event (one post transition, one sweep tick) produces a
round of independent asyncio tasks. PendingWork owns those tasks: it applies
the per-operation timeout, bounds how many run at once, turns every failure
into a logged OperationResult, and tells callers when the round has settled.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from ...core.logging import get_logger
from .errors import InboxError

logger = get_logger(__name__)


@dataclass
class OperationResult:
    """Outcome of one per-recipient or per-entry task."""

    operation: str
    user_id: str
    post_id: str | None = None
    ok: bool = True
    value: Any = None
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return not self.ok


@dataclass
class PendingWork:
    """
    Tracks the tasks of one dispatch or sweep round.

    Tasks may spawn further tasks into the same round (a recipient
    evaluation spawning its inbox write); ``settled()`` waits for those too.
    A task must never await a sibling, so the concurrency bound cannot
    deadlock.

    Long-lived rounds (a writer's standalone writes, deferred re-adds) pass
    ``keep_results=False``: outcomes are still counted and returned by each
    task, but not retained on the round.
    """

    name: str
    timeout: float | None = None
    max_concurrency: int | None = None
    keep_results: bool = True

    _tasks: set[asyncio.Task] = field(default_factory=set, repr=False)
    _results: list[OperationResult] = field(default_factory=list, repr=False)
    _semaphore: asyncio.Semaphore | None = field(default=None, repr=False)
    _spawned: int = field(default=0, repr=False)
    _completed: int = field(default=0, repr=False)
    _failed: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)

    @property
    def outstanding(self) -> int:
        """Number of tasks not yet finished."""
        return len(self._tasks)

    @property
    def spawned(self) -> int:
        return self._spawned

    @property
    def completed(self) -> int:
        """Number of tasks that finished with a result (success or failure)."""
        return self._completed

    @property
    def failed_count(self) -> int:
        return self._failed

    @property
    def results(self) -> list[OperationResult]:
        """Retained results; always empty when ``keep_results`` is off."""
        return list(self._results)

    @property
    def failures(self) -> list[OperationResult]:
        return [r for r in self._results if r.failed]

    def spawn(
        self,
        operation: str,
        coro: Coroutine[Any, Any, Any],
        *,
        user_id: str,
        post_id: str | None = None,
    ) -> asyncio.Task[OperationResult]:
        """
        Schedule ``coro`` as a tracked task of this round.

        The returned task always completes with an OperationResult; it never
        raises except on cancellation.
        """
        task = asyncio.create_task(
            self._run(operation, coro, user_id=user_id, post_id=post_id),
            name=f"{self.name}:{operation}:{user_id}",
        )
        self._spawned += 1
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        operation: str,
        coro: Coroutine[Any, Any, Any],
        *,
        user_id: str,
        post_id: str | None,
    ) -> OperationResult:
        result = OperationResult(operation=operation, user_id=user_id, post_id=post_id)
        log_extra = {
            "work_round": self.name,
            "operation": operation,
            "user_id": user_id,
            "post_id": post_id,
        }
        started = False
        start_time = time.monotonic()

        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    started = True
                    start_time = time.monotonic()
                    result.value = await self._with_timeout(coro)
            else:
                started = True
                result.value = await self._with_timeout(coro)

        except asyncio.TimeoutError:
            result.ok = False
            result.error_type = "TimeoutError"
            result.error = (
                f"timed out after {self.timeout:.1f}s" if self.timeout is not None else "timed out"
            )
            logger.warning("%s %s", operation, result.error, extra=log_extra)

        except asyncio.CancelledError:
            if not started:
                coro.close()
            raise

        except InboxError as e:
            result.ok = False
            result.error_type = type(e).__name__
            result.error = str(e)
            logger.warning("%s failed: %s", operation, e, extra=log_extra)

        except Exception as e:
            result.ok = False
            result.error_type = type(e).__name__
            result.error = str(e)
            logger.error("%s crashed: %s", operation, e, exc_info=True, extra=log_extra)

        result.duration_seconds = time.monotonic() - start_time
        self._completed += 1
        if result.failed:
            self._failed += 1
        if self.keep_results:
            self._results.append(result)
        return result

    async def _with_timeout(self, coro: Coroutine[Any, Any, Any]) -> Any:
        if self.timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self.timeout)

    async def settled(self, timeout: float | None = None) -> list[OperationResult]:
        """
        Wait until no task of this round is outstanding.

        Args:
            timeout: Maximum time to wait overall (None = no limit)

        Returns:
            All results retained so far

        Raises:
            asyncio.TimeoutError: If tasks are still outstanding after ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while self._tasks:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise asyncio.TimeoutError(
                    f"Round '{self.name}' has {self.outstanding} outstanding task(s)"
                )
            await asyncio.wait(set(self._tasks), timeout=remaining)

        return self.results

    async def cancel(self) -> None:
        """Cancel every outstanding task, including nested spawns, and wait for them."""
        while self._tasks:
            tasks = list(self._tasks)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
