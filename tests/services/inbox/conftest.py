"""Fixtures for inbox service tests."""

from __future__ import annotations

import asyncio

import pytest

from comms_inbox.services.inbox import (
    InboxEntry,
    InboxWriter,
    Post,
    PreferenceEvaluator,
    StoreReadFailure,
    StoreWriteFailure,
    User,
)
from comms_inbox.services.store import InMemoryDocumentStore


class FaultyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store with injectable failures and delays.

    Failures are keyed by (operation, user_id); use user_id None to fail
    the operation for everyone.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_on: set[tuple[str, str | None]] = set()
        self.delay_on: dict[tuple[str, str | None], float] = {}
        self.calls: list[tuple[str, str | None]] = []

    async def _maybe_fail(self, operation: str, user_id: str | None, error: type) -> None:
        self.calls.append((operation, user_id))
        delay = self.delay_on.get((operation, user_id), self.delay_on.get((operation, None)))
        if delay:
            await asyncio.sleep(delay)
        if (operation, user_id) in self.fail_on or (operation, None) in self.fail_on:
            raise error(operation, "injected failure")

    async def list_users(self) -> list[User]:
        await self._maybe_fail("list_users", None, StoreReadFailure)
        return await super().list_users()

    async def list_other_users(self, excluding_id: str) -> list[User]:
        await self._maybe_fail("list_other_users", None, StoreReadFailure)
        return await super().list_other_users(excluding_id)

    async def list_posts_in_channel(self, channel_id: str) -> list[Post]:
        await self._maybe_fail("list_posts_in_channel", None, StoreReadFailure)
        return await super().list_posts_in_channel(channel_id)

    async def get_user_inbox(self, user_id: str) -> list[InboxEntry]:
        await self._maybe_fail("get_user_inbox", user_id, StoreReadFailure)
        return await super().get_user_inbox(user_id)

    async def upsert_inbox_entry(self, user_id: str, entry: InboxEntry) -> None:
        await self._maybe_fail("upsert_inbox_entry", user_id, StoreWriteFailure)
        await super().upsert_inbox_entry(user_id, entry)

    async def patch_inbox_entry(self, user_id: str, post_id: str, patch) -> None:
        await self._maybe_fail("patch_inbox_entry", user_id, StoreWriteFailure)
        await super().patch_inbox_entry(user_id, post_id, patch)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def faulty_store() -> FaultyDocumentStore:
    return FaultyDocumentStore()


@pytest.fixture
def writer(store: InMemoryDocumentStore) -> InboxWriter:
    return InboxWriter(store, timeout=1.0)


@pytest.fixture
def evaluator(store: InMemoryDocumentStore) -> PreferenceEvaluator:
    return PreferenceEvaluator(store)
