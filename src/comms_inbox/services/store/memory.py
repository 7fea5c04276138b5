"""
In-Memory Implementation of the Document Store.

Keeps plain documents in dictionaries, copying on every read and write so
callers can never mutate stored state through a returned object. Used as the
test fake and for local experiments.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import Any

from ..inbox.errors import NotFoundOnPatch
from ..inbox.models import InboxEntry, Post, User
from .documents import decode_all, decode_one


class InMemoryDocumentStore:
    """
    Dictionary-backed DocumentStore.

    Every operation yields to the event loop once, so concurrent tasks
    interleave the way they would against a networked store.
    """

    def __init__(self) -> None:
        self._posts: dict[str, dict[str, Any]] = {}
        self._users: dict[str, dict[str, Any]] = {}
        self._inboxes: dict[str, dict[str, dict[str, Any]]] = {}
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    async def get_post(self, post_id: str) -> Post | None:
        await asyncio.sleep(0)
        doc = self._posts.get(post_id)
        return decode_one("get_post", doc, Post.from_document) if doc is not None else None

    async def put_post(self, post: Post) -> None:
        await asyncio.sleep(0)
        self._posts[post.id] = post.to_document()

    async def list_posts_in_channel(self, channel_id: str) -> list[Post]:
        await asyncio.sleep(0)
        posts = decode_all("list_posts_in_channel", self._posts.values(), Post.from_document)
        return [post for post in posts if post.has_channel_name(channel_id)]

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def put_user(self, user: User) -> None:
        await asyncio.sleep(0)
        self._users[user.id] = user.to_document()

    async def list_users(self) -> list[User]:
        await asyncio.sleep(0)
        return decode_all("list_users", self._users.values(), User.from_document)

    async def list_other_users(self, excluding_id: str) -> list[User]:
        await asyncio.sleep(0)
        others = [doc for user_id, doc in self._users.items() if user_id != excluding_id]
        return decode_all("list_other_users", others, User.from_document)

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    async def get_user_inbox(self, user_id: str) -> list[InboxEntry]:
        await asyncio.sleep(0)
        inbox = self._inboxes.get(user_id, {})
        return decode_all(
            "get_user_inbox", inbox.values(), lambda doc: InboxEntry.from_document(user_id, doc)
        )

    async def get_inbox_entry(self, user_id: str, post_id: str) -> InboxEntry | None:
        await asyncio.sleep(0)
        doc = self._inboxes.get(user_id, {}).get(post_id)
        if doc is None:
            return None
        return decode_one(
            "get_inbox_entry", doc, lambda raw: InboxEntry.from_document(user_id, raw)
        )

    async def upsert_inbox_entry(self, user_id: str, entry: InboxEntry) -> None:
        await asyncio.sleep(0)
        self._inboxes.setdefault(user_id, {})[entry.post_id] = entry.to_document()

    async def patch_inbox_entry(
        self, user_id: str, post_id: str, patch: Mapping[str, Any]
    ) -> None:
        await asyncio.sleep(0)
        doc = self._inboxes.get(user_id, {}).get(post_id)
        if doc is None:
            raise NotFoundOnPatch(user_id, post_id)
        doc.update(copy.deepcopy(dict(patch)))

    # -------------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------------

    def inbox_document(self, user_id: str, post_id: str) -> dict[str, Any] | None:
        """Raw stored document for an inbox entry (copy)."""
        doc = self._inboxes.get(user_id, {}).get(post_id)
        return copy.deepcopy(doc) if doc is not None else None

    def inbox_size(self, user_id: str) -> int:
        return len(self._inboxes.get(user_id, {}))

    def put_raw_user(self, user_id: str, doc: Any) -> None:
        """Store a user document exactly as given, without going through User."""
        self._users[user_id] = copy.deepcopy(doc)

    def put_raw_inbox_document(self, user_id: str, post_id: str, doc: Any) -> None:
        """Store an inbox document exactly as given, without going through InboxEntry."""
        self._inboxes.setdefault(user_id, {})[post_id] = copy.deepcopy(doc)
