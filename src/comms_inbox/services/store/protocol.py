"""
Document Store Protocol Interface.

This file defines the abstract interface the inbox core consumes from the
document store. The core never talks to a storage engine directly, so it can
run against the in-memory store in tests and against SQLite (or any other
backend implementing this protocol) in production.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..inbox.models import InboxEntry, Post, User


@runtime_checkable
class DocumentStore(Protocol):
    """
    Abstract interface for post, user and inbox storage.

    Implementations must be async-compatible and tolerate concurrent calls
    from many per-recipient and per-entry tasks.

    Design notes:
    - Inbox entries are partitioned by user and keyed by post id
    - Posts are read-only from the inbox core's point of view
    - Backend failures surface as StoreReadFailure / StoreWriteFailure
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the store. Must be called before any other operations."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        ...

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_post(self, post_id: str) -> Post | None:
        """Get a post by id, or None if it does not exist."""
        ...

    @abstractmethod
    async def put_post(self, post: Post) -> None:
        """Create or replace a post."""
        ...

    @abstractmethod
    async def list_posts_in_channel(self, channel_id: str) -> list[Post]:
        """
        List posts carried by a channel.

        Only posts whose ``channels[channel_id].channelName`` is truthy are
        returned.
        """
        ...

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @abstractmethod
    async def put_user(self, user: User) -> None:
        """Create or replace a user."""
        ...

    @abstractmethod
    async def list_users(self) -> list[User]:
        """List every user."""
        ...

    @abstractmethod
    async def list_other_users(self, excluding_id: str) -> list[User]:
        """List every user except ``excluding_id``."""
        ...

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_user_inbox(self, user_id: str) -> list[InboxEntry]:
        """List all entries in a user's inbox."""
        ...

    @abstractmethod
    async def get_inbox_entry(self, user_id: str, post_id: str) -> InboxEntry | None:
        """Get one inbox entry, or None if absent."""
        ...

    @abstractmethod
    async def upsert_inbox_entry(self, user_id: str, entry: InboxEntry) -> None:
        """
        Create or replace the entry keyed by (user_id, entry.post_id).

        Replacement overwrites every field; nothing from the previous entry
        survives.
        """
        ...

    @abstractmethod
    async def patch_inbox_entry(
        self, user_id: str, post_id: str, patch: Mapping[str, Any]
    ) -> None:
        """
        Update individual document fields of an existing entry.

        Raises:
            NotFoundOnPatch: If the entry does not exist
        """
        ...
