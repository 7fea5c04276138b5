"""
Inbox Writer.

Creates, replaces and patches entries in a user's inbox. Writes are
fire-and-forget: each call schedules a tracked task and returns it
immediately, so a fan-out never blocks on write confirmation while the
outcome is still observable through the task's OperationResult.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ...core.logging import get_logger
from .models import InboxEntry, Post, User
from .pending import OperationResult, PendingWork
from .priority import classify

if TYPE_CHECKING:
    from ..store.protocol import DocumentStore

logger = get_logger(__name__)

OP_ADD = "add_to_inbox"
OP_EDIT = "edit_inbox_post"


def build_entry(user: User, post: Post) -> InboxEntry:
    """
    Snapshot a post into a fresh inbox entry for ``user``.

    The entry has no triage deadline: replacing an existing entry with it
    resets any snooze the user had set.
    """
    return InboxEntry(
        user_id=user.id,
        post=post.snapshot(),
        inbox_priority=classify(user, post),
    )


class InboxWriter:
    """
    Writes inbox entries through the document store.

    Calls made without an explicit ``work`` round are tracked by the
    writer's own ``pending`` round, which counts outcomes but does not
    retain them; the returned task carries each OperationResult.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        timeout: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.store = store
        self.pending = PendingWork(
            name="inbox-writer",
            timeout=timeout,
            max_concurrency=max_concurrency,
            keep_results=False,
        )

    async def store_entry(self, entry: InboxEntry) -> InboxEntry:
        """Create or replace the entry keyed by (user_id, post_id) and wait for it."""
        await self.store.upsert_inbox_entry(entry.user_id, entry)
        logger.info(
            "Post added to inbox (priority=%d)",
            entry.inbox_priority,
            extra={"user_id": entry.user_id, "post_id": entry.post_id},
        )
        return entry

    async def write_entry(self, user: User, post: Post) -> InboxEntry:
        """
        Snapshot ``post`` for ``user`` and write it, waiting for the store.

        Returns:
            The entry that was written
        """
        return await self.store_entry(build_entry(user, post))

    def add_to_inbox(
        self, user: User, post: Post, work: PendingWork | None = None
    ) -> asyncio.Task[OperationResult]:
        """
        Schedule a create-or-replace of the user's entry for ``post``.

        The post is snapshotted before this returns.

        Returns:
            Task resolving to an OperationResult whose value is the InboxEntry
        """
        entry = build_entry(user, post)
        round_ = work or self.pending
        return round_.spawn(OP_ADD, self.store_entry(entry), user_id=user.id, post_id=post.id)

    async def patch_entry(self, user_id: str, post_id: str, key: str, value: Any) -> None:
        """
        Set one document field of an existing entry and wait for it.

        Raises:
            NotFoundOnPatch: If the entry does not exist
        """
        await self.store.patch_inbox_entry(user_id, post_id, {key: value})
        logger.info(
            "Inbox post updated: %s changed to %r",
            key,
            value,
            extra={"user_id": user_id, "post_id": post_id},
        )

    def edit_inbox_post(
        self,
        user_id: str,
        post_id: str,
        key: str,
        value: Any,
        work: PendingWork | None = None,
    ) -> asyncio.Task[OperationResult]:
        """
        Schedule a single-field update of an existing entry.

        Writing a value the field already holds is harmless. A missing entry
        yields a failed OperationResult (NotFoundOnPatch), not an exception.
        """
        round_ = work or self.pending
        return round_.spawn(
            OP_EDIT,
            self.patch_entry(user_id, post_id, key, value),
            user_id=user_id,
            post_id=post_id,
        )
