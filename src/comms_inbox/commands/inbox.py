"""
Comms Inbox Commands

Operate the dispatch and triage engine against the SQLite document store
at COMMS_DB_PATH (default {instance_root}/cache/inbox.db).
"""

import argparse
import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

from ..core import format_epoch_ms, get_settings, get_utc_timestamp
from ..services.inbox import (
    InboxEngine,
    InboxError,
    MalformedPost,
    Post,
    PreferenceEvaluator,
    User,
    classify,
)
from ..services.store import DocumentStore, SQLiteDocumentStore

T = TypeVar("T")


def _run_with_store(fn: Callable[[DocumentStore], Awaitable[T]]) -> T:
    """Open the SQLite store, run ``fn`` against it and close it again."""

    async def runner() -> T:
        async with SQLiteDocumentStore(get_settings().db_path) as store:
            return await fn(store)

    return asyncio.run(runner())


def _load_json(path: str) -> Any:
    return json.loads(Path(path).read_text())


def _error(query_ts: str, error: str, message: str) -> dict[str, Any]:
    return {
        "query_timestamp": query_ts,
        "status": "error",
        "error": error,
        "message": message,
    }


# =============================================================================
# Seed Command
# =============================================================================


def cmd_seed(args: argparse.Namespace) -> dict[str, Any]:
    """
    Load users and posts into the store.

    The file holds ``{"users": [...], "posts": [...]}`` documents.
    """
    query_ts = get_utc_timestamp()

    try:
        data = _load_json(args.file)
    except (OSError, json.JSONDecodeError) as e:
        return _error(query_ts, "invalid_file", str(e))

    try:
        users = [User.from_document(doc) for doc in data.get("users", [])]
        posts = [Post.from_document(doc) for doc in data.get("posts", [])]
    except MalformedPost as e:
        return _error(query_ts, "invalid_post", str(e))

    async def seed(store: DocumentStore) -> None:
        for user in users:
            await store.put_user(user)
        for post in posts:
            await store.put_post(post)

    _run_with_store(seed)

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "users_loaded": len(users),
        "posts_loaded": len(posts),
    }


# =============================================================================
# Dispatch Command
# =============================================================================


def cmd_dispatch(args: argparse.Namespace) -> dict[str, Any]:
    """Feed a post update (before/after documents) through the dispatcher."""
    query_ts = get_utc_timestamp()

    try:
        before = _load_json(args.before)
        after = _load_json(args.after)
    except (OSError, json.JSONDecodeError) as e:
        return _error(query_ts, "invalid_file", str(e))

    if not isinstance(after, dict):
        return _error(query_ts, "invalid_post", "updated post must be a JSON object")

    try:
        updated = Post.from_document(after)
    except MalformedPost as e:
        return _error(query_ts, "invalid_post", str(e))

    async def dispatch(store: DocumentStore) -> dict[str, Any]:
        # The change feed reports updates that are already persisted
        await store.put_post(updated)

        engine = InboxEngine(store)
        round_ = await engine.on_post_updated(before, after)
        if round_ is None:
            return {"dispatched": False}

        results = await round_.settled()
        return {
            "dispatched": True,
            "post_id": round_.post_id,
            "recipients": sorted(round_.recipient_ids),
            "notified": sorted(round_.notified_user_ids),
            "failures": [
                {"operation": r.operation, "user_id": r.user_id, "error": r.error}
                for r in results
                if r.failed
            ],
        }

    result = _run_with_store(dispatch)

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        **result,
    }


# =============================================================================
# Sweep Commands
# =============================================================================


def cmd_sweep(args: argparse.Namespace) -> dict[str, Any]:
    """Run a single triage sweep."""
    query_ts = get_utc_timestamp()

    async def sweep(store: DocumentStore) -> dict[str, Any]:
        engine = InboxEngine(store)
        stats = await engine.sweeper.run_once(args.now)
        return {
            "now": stats.now,
            "now_iso": format_epoch_ms(stats.now),
            "users_scanned": stats.users_scanned,
            "entries_expired": stats.entries_expired,
            "entries_cleared": stats.entries_cleared,
            "failures": stats.failures,
            "duration_seconds": round(stats.duration_seconds, 3),
        }

    try:
        result = _run_with_store(sweep)
    except InboxError as e:
        return _error(query_ts, "store_error", str(e))

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        **result,
    }


def cmd_run_sweeper(args: argparse.Namespace) -> dict[str, Any]:
    """Run the triage sweep loop until interrupted."""
    query_ts = get_utc_timestamp()
    settings = get_settings()
    interval = args.interval or settings.sweep_interval_seconds

    async def run(store: DocumentStore) -> dict[str, Any]:
        engine = InboxEngine(store)
        engine.sweeper.interval_seconds = interval
        task = engine.start()
        try:
            await task
        finally:
            await engine.stop()
        return engine.get_status()

    try:
        status = _run_with_store(run)
    except KeyboardInterrupt:
        return {
            "query_timestamp": query_ts,
            "status": "stopped",
            "interval_seconds": interval,
        }

    return {
        "query_timestamp": query_ts,
        "status": "stopped",
        **status,
    }


# =============================================================================
# Inspection Commands
# =============================================================================


def cmd_inbox(args: argparse.Namespace) -> dict[str, Any]:
    """List a user's inbox entries."""
    query_ts = get_utc_timestamp()

    async def list_inbox(store: DocumentStore) -> list[dict[str, Any]]:
        entries = await store.get_user_inbox(args.user_id)
        return [
            {
                "post_id": entry.post_id,
                "channel_id": entry.post.channel_id,
                "inbox_priority": entry.inbox_priority,
                "triaged_until": entry.triaged_until,
                "triaged_until_iso": format_epoch_ms(entry.triaged_until),
                "text": entry.post.text,
            }
            for entry in sorted(entries, key=lambda e: (e.inbox_priority, e.post_id))
        ]

    entries = _run_with_store(list_inbox)

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "user_id": args.user_id,
        "count": len(entries),
        "entries": entries,
    }


def cmd_classify(args: argparse.Namespace) -> dict[str, Any]:
    """Show how a stored post would be ranked and gated for a user."""
    query_ts = get_utc_timestamp()

    async def explain(store: DocumentStore) -> dict[str, Any] | None:
        post = await store.get_post(args.post_id)
        users = {user.id: user for user in await store.list_users()}
        user = users.get(args.user_id)
        if post is None or user is None:
            return None

        evaluator = PreferenceEvaluator(store)
        return {
            "user_id": user.id,
            "post_id": post.id,
            "channel_id": post.channel_id,
            "preference": user.preference_for(post.channel_id).value,
            "inbox_priority": classify(user, post),
            "should_notify": await evaluator.should_notify(user, post),
            "is_creator": user.id == post.creator_id,
        }

    result = _run_with_store(explain)
    if result is None:
        return _error(
            query_ts,
            "not_found",
            f"Unknown user {args.user_id} or post {args.post_id}",
        )

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        **result,
    }


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register inbox command parsers."""

    seed_parser = subparsers.add_parser("seed", help="Load users and posts from a JSON file")
    seed_parser.add_argument("file", help='JSON file with {"users": [...], "posts": [...]}')
    seed_parser.set_defaults(func=cmd_seed)

    dispatch_parser = subparsers.add_parser(
        "dispatch",
        help="Dispatch a post update to recipient inboxes",
        description="Feed a post update through the dispatcher. Only an update that "
        "makes the post sendable (sentAt set and not 'pending') notifies anyone.",
    )
    dispatch_parser.add_argument("before", help="JSON file with the previous post (or null)")
    dispatch_parser.add_argument("after", help="JSON file with the updated post")
    dispatch_parser.set_defaults(func=cmd_dispatch)

    sweep_parser = subparsers.add_parser("sweep", help="Run one triage sweep")
    sweep_parser.add_argument(
        "--now",
        type=int,
        default=None,
        help="Sweep time in epoch milliseconds (default: current time)",
    )
    sweep_parser.set_defaults(func=cmd_sweep)

    run_parser = subparsers.add_parser("run-sweeper", help="Run triage sweeps until interrupted")
    run_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps (default: COMMS_SWEEP_INTERVAL_SECONDS)",
    )
    run_parser.set_defaults(func=cmd_run_sweeper)

    inbox_parser = subparsers.add_parser("inbox", help="List a user's inbox")
    inbox_parser.add_argument("user_id", help="User id")
    inbox_parser.set_defaults(func=cmd_inbox)

    classify_parser = subparsers.add_parser(
        "classify", help="Explain priority and notification decision for a user/post"
    )
    classify_parser.add_argument("user_id", help="User id")
    classify_parser.add_argument("post_id", help="Post id")
    classify_parser.set_defaults(func=cmd_classify)
