"""Tests for TriageSweeper."""

from __future__ import annotations

import asyncio

import pytest

pytestmark = pytest.mark.asyncio

from comms_inbox.services.inbox import (
    InboxEntry,
    InboxWriter,
    StoreReadFailure,
    TriageSweeper,
)

NOW = 1_768_478_400_000
MINUTE = 60_000


async def seed_entry(store, user_factory, post_factory, user_id, post_id, triaged_until):
    await store.put_user(user_factory(user_id))
    entry = InboxEntry(
        user_id=user_id,
        post=post_factory(post_id=post_id),
        inbox_priority=500,
        triaged_until=triaged_until,
    )
    await store.upsert_inbox_entry(user_id, entry)


@pytest.fixture
def sweeper(store, writer) -> TriageSweeper:
    return TriageSweeper(store, writer, interval_seconds=0.01, operation_timeout=1.0)


class TestSweep:
    """Tests for a single sweep."""

    async def test_clears_only_expired_entries(
        self, store, sweeper, user_factory, post_factory
    ):
        await seed_entry(store, user_factory, post_factory, "bob", "past", NOW - MINUTE)
        await seed_entry(store, user_factory, post_factory, "bob", "exact", NOW)
        await seed_entry(store, user_factory, post_factory, "bob", "future", NOW + MINUTE)
        await seed_entry(store, user_factory, post_factory, "bob", "never", None)

        stats = await sweeper.run_once(NOW)

        assert stats.entries_expired == 1
        assert stats.entries_cleared == 1
        assert (await store.get_inbox_entry("bob", "past")).triaged_until is None
        assert (await store.get_inbox_entry("bob", "exact")).triaged_until == NOW
        assert (await store.get_inbox_entry("bob", "future")).triaged_until == NOW + MINUTE

    async def test_clears_across_users(self, store, sweeper, user_factory, post_factory):
        for user_id in ("bob", "carol", "dave"):
            await seed_entry(store, user_factory, post_factory, user_id, "p1", NOW - 1)
            await seed_entry(store, user_factory, post_factory, user_id, "p2", NOW - 2)

        stats = await sweeper.run_once(NOW)

        assert stats.users_scanned == 3
        assert stats.entries_cleared == 6
        for user_id in ("bob", "carol", "dave"):
            for entry in await store.get_user_inbox(user_id):
                assert entry.triaged_until is None

    async def test_second_sweep_is_noop(self, store, sweeper, user_factory, post_factory):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", NOW - MINUTE)

        await sweeper.run_once(NOW)
        second = await sweeper.run_once(NOW)

        assert second.entries_expired == 0
        assert second.entries_cleared == 0

    async def test_clear_keeps_rest_of_entry(self, store, sweeper, user_factory, post_factory):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", NOW - 1)

        await sweeper.run_once(NOW)

        doc = store.inbox_document("bob", "p1")
        assert doc["triagedUntil"] is None
        assert doc["inboxPriority"] == 500
        assert doc["creatorId"] == "alice"

    async def test_sweep_returns_before_settling(
        self, store, sweeper, user_factory, post_factory
    ):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", NOW - 1)

        round_ = await sweeper.sweep(NOW)

        assert round_.user_ids == ["bob"]
        assert round_.work.outstanding == 1
        await round_.settled()
        assert round_.stats().entries_cleared == 1

    async def test_defaults_to_current_time(self, store, sweeper, user_factory, post_factory):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", 1)

        stats = await sweeper.run_once()

        assert stats.now > NOW
        assert stats.entries_cleared == 1

    async def test_no_users(self, sweeper):
        stats = await sweeper.run_once(NOW)
        assert stats.users_scanned == 0
        assert sweeper.last_stats is stats


class TestUnreadableDocuments:
    """A bad document affects only itself, never its user's other entries."""

    async def test_non_numeric_deadline_left_alone(
        self, store, sweeper, user_factory, post_factory
    ):
        await seed_entry(store, user_factory, post_factory, "bob", "good", NOW - 1)
        await seed_entry(
            store, user_factory, post_factory, "bob", "bad", "2026-01-01T00:00:00Z"
        )

        stats = await sweeper.run_once(NOW)

        assert stats.failures == 0
        assert stats.users_scanned == 1
        assert stats.entries_cleared == 1
        assert (await store.get_inbox_entry("bob", "good")).triaged_until is None
        assert store.inbox_document("bob", "bad")["triagedUntil"] == "2026-01-01T00:00:00Z"

    async def test_unparseable_inbox_document_skipped(
        self, store, sweeper, user_factory, post_factory
    ):
        await seed_entry(store, user_factory, post_factory, "bob", "good", NOW - 1)
        store.put_raw_inbox_document(
            "bob", "broken", {"id": "broken", "mentions": ["bob"], "triagedUntil": NOW - 1}
        )

        stats = await sweeper.run_once(NOW)

        assert stats.failures == 0
        assert stats.entries_cleared == 1
        assert (await store.get_inbox_entry("bob", "good")).triaged_until is None

    async def test_unreadable_users_do_not_stop_sweep(
        self, store, sweeper, user_factory, post_factory
    ):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", NOW - 1)
        store.put_raw_user("mallory", {"id": "mallory", "notifyPreferences": "all"})
        store.put_raw_user("zed", "not a document")

        stats = await sweeper.run_once(NOW)

        assert stats.users_scanned == 2
        assert stats.failures == 0
        assert (await store.get_inbox_entry("bob", "p1")).triaged_until is None


class TestSweepFailures:
    """Failures are isolated per user and per entry."""

    @pytest.fixture
    def faulty_sweeper(self, faulty_store) -> TriageSweeper:
        return TriageSweeper(faulty_store, InboxWriter(faulty_store), operation_timeout=0.05)

    async def test_user_scan_failure_isolated(
        self, faulty_store, faulty_sweeper, user_factory, post_factory
    ):
        await seed_entry(faulty_store, user_factory, post_factory, "bob", "p1", NOW - 1)
        await seed_entry(faulty_store, user_factory, post_factory, "carol", "p1", NOW - 1)
        faulty_store.fail_on.add(("get_user_inbox", "bob"))

        stats = await faulty_sweeper.run_once(NOW)

        assert stats.failures == 1
        assert stats.users_scanned == 1
        assert (await faulty_store.get_inbox_entry("carol", "p1")).triaged_until is None
        assert faulty_store.inbox_document("bob", "p1")["triagedUntil"] == NOW - 1

    async def test_entry_write_failure_isolated(
        self, faulty_store, faulty_sweeper, user_factory, post_factory
    ):
        await seed_entry(faulty_store, user_factory, post_factory, "bob", "p1", NOW - 1)
        await seed_entry(faulty_store, user_factory, post_factory, "carol", "p1", NOW - 1)
        faulty_store.fail_on.add(("patch_inbox_entry", "carol"))

        stats = await faulty_sweeper.run_once(NOW)

        assert stats.entries_expired == 2
        assert stats.entries_cleared == 1
        assert stats.failures == 1
        assert faulty_store.inbox_document("bob", "p1")["triagedUntil"] is None

    async def test_slow_scan_times_out(
        self, faulty_store, faulty_sweeper, user_factory, post_factory
    ):
        await seed_entry(faulty_store, user_factory, post_factory, "bob", "p1", NOW - 1)
        await seed_entry(faulty_store, user_factory, post_factory, "carol", "p1", NOW - 1)
        faulty_store.delay_on[("get_user_inbox", "bob")] = 1.0

        stats = await faulty_sweeper.run_once(NOW)

        assert stats.failures == 1
        assert stats.entries_cleared == 1

    async def test_user_listing_failure_raises(self, faulty_store, faulty_sweeper):
        faulty_store.fail_on.add(("list_users", None))

        with pytest.raises(StoreReadFailure):
            await faulty_sweeper.sweep(NOW)


class TestSweepLoop:
    """Tests for the background loop."""

    async def test_start_and_stop(self, store, sweeper, user_factory, post_factory):
        await seed_entry(store, user_factory, post_factory, "bob", "p1", 1)

        sweeper.start()
        await asyncio.sleep(0.05)

        assert sweeper.is_running
        assert sweeper.last_stats is not None
        assert (await store.get_inbox_entry("bob", "p1")).triaged_until is None

        await sweeper.stop()
        assert not sweeper.is_running

    async def test_double_start_raises(self, sweeper):
        sweeper.start()
        try:
            with pytest.raises(RuntimeError):
                sweeper.start()
        finally:
            await sweeper.stop()

    async def test_loop_survives_errors(self, faulty_store, monkeypatch):
        """A failed sweep is logged and retried after a backoff."""
        monkeypatch.setattr(
            "comms_inbox.services.inbox.sweeper.DEFAULT_ERROR_BACKOFF_SECONDS", 0.01
        )
        faulty_store.fail_on.add(("list_users", None))
        sweeper = TriageSweeper(faulty_store, InboxWriter(faulty_store), interval_seconds=0.01)

        sweeper.start()
        await asyncio.sleep(0.05)
        faulty_store.fail_on.clear()
        await asyncio.sleep(0.1)

        assert sweeper.is_running
        assert sweeper.last_stats is not None
        assert faulty_store.calls.count(("list_users", None)) >= 2

        await sweeper.stop()

    async def test_stop_mid_sweep_cancels_its_tasks(
        self, faulty_store, user_factory, post_factory
    ):
        """Stopping the loop also cancels the deadline resets it was waiting on."""
        await seed_entry(faulty_store, user_factory, post_factory, "bob", "p1", 1)
        faulty_store.delay_on[("patch_inbox_entry", "bob")] = 10.0
        sweeper = TriageSweeper(faulty_store, InboxWriter(faulty_store), interval_seconds=60)

        sweeper.start()
        for _ in range(100):
            if ("patch_inbox_entry", "bob") in faulty_store.calls:
                break
            await asyncio.sleep(0.01)
        round_ = sweeper.current_round
        assert round_ is not None
        assert round_.work.outstanding == 1

        await sweeper.stop(timeout=1.0)

        assert round_.work.outstanding == 0
        assert sweeper.current_round is None
        assert faulty_store.inbox_document("bob", "p1")["triagedUntil"] == 1
