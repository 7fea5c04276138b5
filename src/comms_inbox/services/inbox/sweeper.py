"""
Triage Sweeper.

Background task that periodically returns snoozed inbox entries to normal:
every entry whose ``triagedUntil`` deadline lies before the sweep time gets
its deadline cleared.

A sweep fans out on two tiers. One task per user reads that user's inbox,
and it spawns one task per expired entry to clear the deadline. Failures in
one user's scan or one entry's write do not affect the rest of the sweep.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ...core.formatters import utc_now_ms
from ...core.logging import get_logger
from .models import FIELD_TRIAGED_UNTIL
from .pending import OperationResult, PendingWork
from .writer import OP_EDIT

if TYPE_CHECKING:
    from ..store.protocol import DocumentStore
    from .writer import InboxWriter

logger = get_logger(__name__)

# Default configuration
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0
DEFAULT_ERROR_BACKOFF_SECONDS = 5.0
MAX_ERROR_BACKOFF_SECONDS = 300.0

OP_SCAN = "scan_inbox"


@dataclass
class SweepStats:
    """Statistics from a sweep run."""

    now: int
    users_scanned: int = 0
    entries_expired: int = 0
    entries_cleared: int = 0
    failures: int = 0
    duration_seconds: float = 0.0


@dataclass
class SweepRound:
    """The tasks of one sweep tick."""

    now: int
    user_ids: list[str]
    work: PendingWork

    async def settled(self, timeout: float | None = None) -> list[OperationResult]:
        """Wait for every inbox scan and deadline reset of this sweep."""
        return await self.work.settled(timeout=timeout)

    def stats(self) -> SweepStats:
        """Summarize the results collected so far."""
        stats = SweepStats(now=self.now)
        for result in self.work.results:
            if result.failed:
                stats.failures += 1
            elif result.operation == OP_SCAN:
                stats.users_scanned += 1
                stats.entries_expired += result.value or 0
            elif result.operation == OP_EDIT:
                stats.entries_cleared += 1
        return stats


class TriageSweeper:
    """
    Clears elapsed triage deadlines across every user's inbox.

    Runs in a loop, sleeping between sweeps. Should be started as an asyncio
    task and stopped on shutdown.
    """

    def __init__(
        self,
        store: DocumentStore,
        writer: InboxWriter,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        operation_timeout: float | None = None,
        max_concurrency: int | None = None,
    ):
        """
        Initialize the sweeper.

        Args:
            store: Document store holding the inboxes
            writer: Writer used to clear deadlines
            interval_seconds: How often the background loop sweeps
            operation_timeout: Timeout for each per-user and per-entry task
            max_concurrency: Store operations allowed at once per sweep
        """
        self.store = store
        self.writer = writer
        self.interval_seconds = interval_seconds
        self.operation_timeout = operation_timeout
        self.max_concurrency = max_concurrency
        self._running = False
        self._task: asyncio.Task | None = None
        self._last_stats: SweepStats | None = None
        self._current_round: SweepRound | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_stats(self) -> SweepStats | None:
        return self._last_stats

    @property
    def current_round(self) -> SweepRound | None:
        """The sweep ``run_once`` is waiting on, if any."""
        return self._current_round

    async def sweep(self, now: int | None = None) -> SweepRound:
        """
        Start a sweep and return without waiting for it.

        Args:
            now: Sweep time in epoch ms (defaults to the current time)

        Returns:
            The sweep round; await ``settled()`` to observe completion

        Raises:
            StoreReadFailure: If the user list cannot be read
        """
        if now is None:
            now = utc_now_ms()

        if self.operation_timeout is None:
            users = await self.store.list_users()
        else:
            users = await asyncio.wait_for(self.store.list_users(), timeout=self.operation_timeout)

        round_ = SweepRound(
            now=now,
            user_ids=[user.id for user in users],
            work=PendingWork(
                name=f"sweep:{now}",
                timeout=self.operation_timeout,
                max_concurrency=self.max_concurrency,
            ),
        )

        for user in users:
            round_.work.spawn(OP_SCAN, self._sweep_user(user.id, now, round_.work), user_id=user.id)

        return round_

    async def _sweep_user(self, user_id: str, now: int, work: PendingWork) -> int:
        """Schedule a deadline reset for each expired entry; return how many."""
        entries = await self.store.get_user_inbox(user_id)
        expired = [entry for entry in entries if entry.is_triage_expired(now)]

        for entry in expired:
            self.writer.edit_inbox_post(
                user_id, entry.post_id, FIELD_TRIAGED_UNTIL, None, work=work
            )

        return len(expired)

    async def run_once(self, now: int | None = None) -> SweepStats:
        """
        Run a single sweep and wait for it to settle.

        Returns:
            Statistics from the sweep
        """
        start_time = time.time()

        round_ = await self.sweep(now)
        self._current_round = round_
        await round_.settled()
        self._current_round = None

        stats = round_.stats()
        stats.duration_seconds = time.time() - start_time
        self._last_stats = stats

        if stats.entries_expired > 0 or stats.failures > 0:
            logger.info(
                "Sweep complete: %d/%d triage deadline(s) cleared across %d user(s), "
                "%d failure(s) in %.2fs",
                stats.entries_cleared,
                stats.entries_expired,
                stats.users_scanned,
                stats.failures,
                stats.duration_seconds,
            )
        else:
            logger.debug("Sweep complete: no expired triage deadlines")

        return stats

    async def run(self) -> None:
        """
        Run the sweep loop continuously.

        Runs until cancelled or stopped. Handles errors with exponential backoff.
        """
        self._running = True
        backoff = DEFAULT_ERROR_BACKOFF_SECONDS

        logger.info("Triage sweeper started (interval=%.0f seconds)", self.interval_seconds)

        while self._running:
            try:
                await self.run_once()
                backoff = DEFAULT_ERROR_BACKOFF_SECONDS
                await asyncio.sleep(self.interval_seconds)

            except asyncio.CancelledError:
                logger.info("Triage sweeper cancelled")
                break

            except Exception as e:
                logger.error("Triage sweep error, retrying in %.0fs: %s", backoff, e)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_ERROR_BACKOFF_SECONDS)

        self._running = False
        logger.info("Triage sweeper stopped")

    def start(self) -> asyncio.Task:
        """
        Start the sweep loop as a background task.

        Returns:
            The asyncio Task running the loop
        """
        if self._task is not None and not self._task.done():
            raise RuntimeError("Triage sweeper already running")

        self._task = asyncio.create_task(self.run(), name="inbox-triage-sweeper")
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the sweep loop gracefully.

        A sweep still in progress is cancelled along with the loop; its
        deadlines are picked up again by the next sweep.

        Args:
            timeout: How long to wait for the task to finish
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Triage sweeper did not stop within timeout")
            except asyncio.CancelledError:
                pass
        self._task = None

        round_ = self._current_round
        self._current_round = None
        if round_ is not None and round_.work.outstanding:
            logger.info(
                "Cancelling %d outstanding sweep task(s)",
                round_.work.outstanding,
            )
            await round_.work.cancel()
