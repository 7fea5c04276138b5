"""
Inbox Engine.

Entry point for the drivers around the inbox core:
- on_post_updated: called by the change-feed watcher for every post update
- on_schedule_tick: called by the periodic timer (nominally once a minute)

Also hosts the user-facing triage actions: snoozing an entry until a
deadline, and re-adding a post to an inbox after a delay.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from ...core.config import InboxSettings, get_settings
from ...core.logging import get_logger
from .dispatch import DispatchCoordinator, DispatchRound
from .errors import MalformedPost, StoreError
from .models import FIELD_SENT_AT, FIELD_TRIAGED_UNTIL, Post, User
from .pending import OperationResult, PendingWork
from .preferences import PreferenceEvaluator
from .sweeper import SweepRound, TriageSweeper
from .writer import InboxWriter

if TYPE_CHECKING:
    from ..store.protocol import DocumentStore

logger = get_logger(__name__)

PostLike = Union[Post, Mapping[str, Any]]

OP_READD = "readd_after"


def coerce_post(value: PostLike | None) -> Post | None:
    """
    Accept a Post or a raw post document.

    Raises:
        MalformedPost: If the document has a wrongly typed field
    """
    if value is None or isinstance(value, Post):
        return value
    return Post.from_document(value)


def _previous_post(value: PostLike | None) -> Post | None:
    """Only the sendable state of the prior version matters to dispatch."""
    try:
        return coerce_post(value)
    except MalformedPost as e:
        sent_at = value.get(FIELD_SENT_AT) if isinstance(value, Mapping) else None
        return Post(id=e.post_id or "", creator_id="", channel_id="", sent_at=sent_at)


@dataclass
class InboxEngine:
    """
    Wires the store, writer, evaluator, coordinator and sweeper together.

    Usage:
        engine = InboxEngine(store)
        engine.start()                      # background triage sweeps
        round_ = await engine.on_post_updated(before_doc, after_doc)
        ...
        await engine.stop()
    """

    store: DocumentStore
    settings: InboxSettings | None = None

    writer: InboxWriter = field(init=False)
    evaluator: PreferenceEvaluator = field(init=False)
    coordinator: DispatchCoordinator = field(init=False)
    sweeper: TriageSweeper = field(init=False)

    _deferred: PendingWork = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

        timeout = self.settings.operation_timeout_seconds
        concurrency = self.settings.max_concurrency

        self.writer = InboxWriter(self.store, timeout=timeout, max_concurrency=concurrency)
        self.evaluator = PreferenceEvaluator(self.store)
        self.coordinator = DispatchCoordinator(
            store=self.store,
            writer=self.writer,
            evaluator=self.evaluator,
            operation_timeout=timeout,
            max_concurrency=concurrency,
        )
        self.sweeper = TriageSweeper(
            self.store,
            self.writer,
            interval_seconds=self.settings.sweep_interval_seconds,
            operation_timeout=timeout,
            max_concurrency=concurrency,
        )
        # Deferred re-adds sleep for arbitrary delays, so no round timeout here
        self._deferred = PendingWork(name="deferred-readd", keep_results=False)

    # -------------------------------------------------------------------------
    # Driver entry points
    # -------------------------------------------------------------------------

    async def on_post_updated(
        self, previous_post: PostLike | None, post: PostLike | None
    ) -> DispatchRound | None:
        """
        Handle a post document update from the change feed.

        An updated document that cannot be read is logged and skipped. A
        previous version that cannot be read still contributes its
        ``sentAt``, since only its sendable state matters.
        """
        try:
            after = coerce_post(post)
        except MalformedPost as e:
            self.coordinator.metrics.updates_seen += 1
            self.coordinator.metrics.malformed_posts += 1
            logger.warning("Skipping dispatch: %s", e)
            return None

        if after is None:
            return None
        return await self.coordinator.on_post_became_sendable(_previous_post(previous_post), after)

    async def on_schedule_tick(self, now: int | None = None) -> SweepRound | None:
        """
        Handle a timer tick by starting a triage sweep.

        Returns:
            The sweep round, or None if the sweep could not start
        """
        try:
            return await self.sweeper.sweep(now)
        except (StoreError, asyncio.TimeoutError) as e:
            logger.error("Triage sweep could not start: %s", str(e) or "timed out")
            return None

    # -------------------------------------------------------------------------
    # Triage actions
    # -------------------------------------------------------------------------

    def snooze(self, user_id: str, post_id: str, until: int) -> asyncio.Task[OperationResult]:
        """Hide an inbox entry until ``until`` (epoch ms)."""
        return self.writer.edit_inbox_post(user_id, post_id, FIELD_TRIAGED_UNTIL, until)

    def readd_after(
        self, user: User, post: PostLike, delay_seconds: float
    ) -> asyncio.Task[OperationResult]:
        """
        Re-add a post to the user's inbox once ``delay_seconds`` have passed.

        The re-add replaces the existing entry, so any triage deadline on it
        is cleared.

        Raises:
            TypeError: If ``post`` is None
            MalformedPost: If the post document cannot be read
        """
        resolved = coerce_post(post)
        if resolved is None:
            raise TypeError("readd_after requires a post, got None")
        return self._deferred.spawn(
            OP_READD,
            self._readd_later(user, resolved, delay_seconds),
            user_id=user.id,
            post_id=resolved.id,
        )

    async def _readd_later(self, user: User, post: Post, delay_seconds: float):
        await asyncio.sleep(delay_seconds)
        assert self.settings is not None
        return await asyncio.wait_for(
            self.writer.write_entry(user, post),
            timeout=self.settings.operation_timeout_seconds,
        )

    @property
    def pending_readds(self) -> int:
        return self._deferred.outstanding

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Start the background triage sweep loop."""
        return self.sweeper.start()

    async def settle(self, timeout: float | None = None) -> None:
        """Wait for every in-flight dispatch round, loop sweep and standalone write."""
        await self.coordinator.drain(timeout=timeout)
        sweep = self.sweeper.current_round
        if sweep is not None:
            await sweep.settled(timeout=timeout)
        await self.writer.pending.settled(timeout=timeout)

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Stop sweeping, cancel pending re-adds and let in-flight writes finish.

        Args:
            timeout: Maximum time to wait for in-flight work before cancelling it
        """
        await self.sweeper.stop(timeout=timeout / 2)
        await self._deferred.cancel()

        try:
            await self.settle(timeout=timeout / 2)
        except asyncio.TimeoutError:
            logger.warning("In-flight inbox work did not settle, cancelling")
            await self.coordinator.cancel()
            await self.writer.pending.cancel()

    def get_status(self) -> dict:
        """Get engine status."""
        last = self.sweeper.last_stats
        return {
            "sweeper": {
                "running": self.sweeper.is_running,
                "interval_seconds": self.sweeper.interval_seconds,
                "last_sweep": (
                    {
                        "now": last.now,
                        "users_scanned": last.users_scanned,
                        "entries_expired": last.entries_expired,
                        "entries_cleared": last.entries_cleared,
                        "failures": last.failures,
                        "duration_seconds": round(last.duration_seconds, 3),
                    }
                    if last
                    else None
                ),
            },
            "dispatch": self.coordinator.get_status(),
            "pending_writes": self.writer.pending.outstanding,
            "pending_readds": self.pending_readds,
        }
