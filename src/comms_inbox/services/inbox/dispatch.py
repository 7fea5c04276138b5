"""
Dispatch Coordinator.

Fans a post out to recipient inboxes when it becomes sendable. The check is
edge-triggered: only the not-sendable -> sendable transition dispatches, so
edits to an already-sent post never re-notify anyone.

Each recipient is handled by its own task (preference check, then inbox
write). Tasks are unordered and isolated; a failure for one recipient never
affects the others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ...core.logging import get_logger
from .errors import MalformedPost, StoreError
from .models import is_sendable
from .pending import OperationResult, PendingWork
from .preferences import PreferenceEvaluator
from .writer import OP_ADD, InboxWriter

if TYPE_CHECKING:
    from ..store.protocol import DocumentStore
    from .models import Post, User

logger = get_logger(__name__)

OP_NOTIFY = "notify_recipient"


@dataclass
class DispatchMetrics:
    """Counters for the dispatch coordinator."""

    updates_seen: int = 0
    dispatches_fired: int = 0
    malformed_posts: int = 0
    aborted_dispatches: int = 0
    recipients_evaluated: int = 0
    recipients_notified: int = 0
    failures: int = 0


@dataclass
class DispatchRound:
    """The fan-out for one post transition."""

    post_id: str
    recipient_ids: list[str]
    work: PendingWork

    @property
    def recipients(self) -> int:
        return len(self.recipient_ids)

    @property
    def is_settled(self) -> bool:
        return self.work.outstanding == 0

    async def settled(self, timeout: float | None = None) -> list[OperationResult]:
        """Wait for every evaluation and inbox write of this round."""
        return await self.work.settled(timeout=timeout)

    @property
    def notified_user_ids(self) -> set[str]:
        """Users whose inbox write completed successfully."""
        return {r.user_id for r in self.work.results if r.operation == OP_ADD and r.ok}


@dataclass
class DispatchCoordinator:
    """
    Drives PreferenceEvaluator -> InboxWriter for every recipient of a post.

    Usage:
        coordinator = DispatchCoordinator(store, writer)
        round_ = await coordinator.on_post_became_sendable(before, after)
        if round_:
            await round_.settled()
    """

    store: DocumentStore
    writer: InboxWriter
    evaluator: PreferenceEvaluator | None = None
    operation_timeout: float | None = None
    max_concurrency: int | None = None

    _metrics: DispatchMetrics = field(default_factory=DispatchMetrics, repr=False)
    _rounds: list[DispatchRound] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if self.evaluator is None:
            self.evaluator = PreferenceEvaluator(self.store)

    @property
    def metrics(self) -> DispatchMetrics:
        return self._metrics

    @property
    def active_rounds(self) -> list[DispatchRound]:
        return [r for r in self._rounds if not r.is_settled]

    async def on_post_became_sendable(
        self, previous_post: Post | None, post: Post
    ) -> DispatchRound | None:
        """
        Dispatch ``post`` if this update made it sendable.

        Returns immediately after scheduling the per-recipient tasks; await
        ``DispatchRound.settled()`` to observe completion.

        Returns:
            The dispatch round, or None if nothing was dispatched
        """
        self._metrics.updates_seen += 1

        if is_sendable(previous_post) or not is_sendable(post):
            return None

        try:
            post.validate()
        except MalformedPost as e:
            self._metrics.malformed_posts += 1
            logger.warning("Skipping dispatch: %s", e)
            return None

        # Recipients see the post as it was at the transition
        post = post.snapshot()

        try:
            users = await self._with_timeout(self.store.list_other_users(post.creator_id))
        except (StoreError, asyncio.TimeoutError) as e:
            self._metrics.aborted_dispatches += 1
            logger.error(
                "Could not list recipients, dispatch aborted: %s",
                str(e) or "timed out",
                extra={"post_id": post.id},
            )
            return None

        # Never notify a user about their own post
        recipients = [user for user in users if user.id != post.creator_id]

        round_ = DispatchRound(
            post_id=post.id,
            recipient_ids=[user.id for user in recipients],
            work=PendingWork(
                name=f"dispatch:{post.id}",
                timeout=self.operation_timeout,
                max_concurrency=self.max_concurrency,
            ),
        )
        self._prune_rounds()
        self._rounds.append(round_)
        self._metrics.dispatches_fired += 1

        for user in recipients:
            task = round_.work.spawn(
                OP_NOTIFY,
                self._notify_recipient(user, post, round_.work),
                user_id=user.id,
                post_id=post.id,
            )
            task.add_done_callback(self._record_outcome)

        logger.info(
            "Dispatching post to %d recipient(s)",
            round_.recipients,
            extra={"post_id": post.id, "channel_id": post.channel_id},
        )
        return round_

    async def _notify_recipient(self, user: User, post: Post, work: PendingWork) -> bool:
        """Evaluate one recipient and schedule the inbox write if they qualify."""
        assert self.evaluator is not None
        notify = await self.evaluator.should_notify(user, post)
        self._metrics.recipients_evaluated += 1

        if not notify:
            return False

        self._metrics.recipients_notified += 1
        write = self.writer.add_to_inbox(user, post, work=work)
        write.add_done_callback(self._record_outcome)
        return True

    def _record_outcome(self, task: asyncio.Task[OperationResult]) -> None:
        if task.cancelled():
            return
        if task.result().failed:
            self._metrics.failures += 1

    async def _with_timeout(self, coro):
        if self.operation_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self.operation_timeout)

    def _prune_rounds(self) -> None:
        self._rounds = [r for r in self._rounds if not r.is_settled]

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every dispatch round still in flight."""
        for round_ in list(self._rounds):
            await round_.settled(timeout=timeout)
        self._prune_rounds()

    async def cancel(self) -> None:
        """Cancel every dispatch round still in flight."""
        for round_ in list(self._rounds):
            await round_.work.cancel()
        self._rounds.clear()

    def get_status(self) -> dict:
        """Get coordinator status."""
        return {
            "active_rounds": len(self.active_rounds),
            "metrics": {
                "updates_seen": self._metrics.updates_seen,
                "dispatches_fired": self._metrics.dispatches_fired,
                "malformed_posts": self._metrics.malformed_posts,
                "aborted_dispatches": self._metrics.aborted_dispatches,
                "recipients_evaluated": self._metrics.recipients_evaluated,
                "recipients_notified": self._metrics.recipients_notified,
                "failures": self._metrics.failures,
            },
        }
