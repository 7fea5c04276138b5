"""
SQLite Implementation of the Document Store.

Documents are stored as JSON text with a few denormalized columns for
indexing. Uses WAL mode so the CLI sweeper and other processes can share the
database file.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiosqlite

from ...core.logging import get_logger
from ..inbox.errors import NotFoundOnPatch, StoreReadFailure, StoreWriteFailure
from ..inbox.models import FIELD_INBOX_PRIORITY, FIELD_TRIAGED_UNTIL, InboxEntry, Post, User
from .documents import decode_all, decode_one
from .schema import upgrade_schema

logger = get_logger(__name__)


class SQLiteDocumentStore:
    """
    SQLite implementation of DocumentStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to {instance_root}/cache/inbox.db.
        """
        if db_path is None:
            from ...core.config import get_settings

            db_path = get_settings().db_path

        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None
        # Every inbox write holds this, so a patch's read-modify-write never
        # interleaves with an upsert of the same entry
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Open the database and bring its schema up to date.

        Raises:
            SchemaError: If the schema cannot be upgraded
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")

        try:
            await upgrade_schema(self._db)
        except Exception:
            await self.close()
            raise

        self._db.row_factory = aiosqlite.Row

        logger.info("Document store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Document store closed")

    async def __aenter__(self) -> SQLiteDocumentStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------

    async def _fetch_all(self, operation: str, sql: str, params: tuple = ()) -> list[Any]:
        try:
            cursor = await self.db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StoreReadFailure(operation, str(e)) from e

    async def _fetch_one(self, operation: str, sql: str, params: tuple = ()) -> Any | None:
        try:
            cursor = await self.db.execute(sql, params)
            return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreReadFailure(operation, str(e)) from e

    async def _execute(self, operation: str, sql: str, params: tuple = ()) -> int:
        try:
            cursor = await self.db.execute(sql, params)
            await self.db.commit()
            return cursor.rowcount
        except aiosqlite.Error as e:
            raise StoreWriteFailure(operation, str(e)) from e

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    async def get_post(self, post_id: str) -> Post | None:
        row = await self._fetch_one(
            "get_post", "SELECT document FROM posts WHERE id = ?", (post_id,)
        )
        if row is None:
            return None
        return decode_one("get_post", row["document"], _parse_post)

    async def put_post(self, post: Post) -> None:
        await self._execute(
            "put_post",
            """
            INSERT OR REPLACE INTO posts (id, channel_id, creator_id, document, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                post.id,
                post.channel_id,
                post.creator_id,
                json.dumps(post.to_document()),
                int(time.time()),
            ),
        )

    async def list_posts_in_channel(self, channel_id: str) -> list[Post]:
        # Channel membership lives in the nested channels map, filtered client-side
        rows = await self._fetch_all("list_posts_in_channel", "SELECT document FROM posts")
        posts = decode_all(
            "list_posts_in_channel", (row["document"] for row in rows), _parse_post
        )
        return [post for post in posts if post.has_channel_name(channel_id)]

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def put_user(self, user: User) -> None:
        await self._execute(
            "put_user",
            "INSERT OR REPLACE INTO users (id, document, updated_at) VALUES (?, ?, ?)",
            (user.id, json.dumps(user.to_document()), int(time.time())),
        )

    async def list_users(self) -> list[User]:
        rows = await self._fetch_all("list_users", "SELECT document FROM users ORDER BY id")
        return decode_all("list_users", (row["document"] for row in rows), _parse_user)

    async def list_other_users(self, excluding_id: str) -> list[User]:
        rows = await self._fetch_all(
            "list_other_users",
            "SELECT document FROM users WHERE id != ? ORDER BY id",
            (excluding_id,),
        )
        return decode_all("list_other_users", (row["document"] for row in rows), _parse_user)

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    async def get_user_inbox(self, user_id: str) -> list[InboxEntry]:
        rows = await self._fetch_all(
            "get_user_inbox",
            """
            SELECT document FROM inbox_entries
            WHERE user_id = ?
            ORDER BY inbox_priority, post_id
            """,
            (user_id,),
        )
        return decode_all(
            "get_user_inbox",
            (row["document"] for row in rows),
            lambda raw: InboxEntry.from_document(user_id, _parse_object(raw)),
        )

    async def get_inbox_entry(self, user_id: str, post_id: str) -> InboxEntry | None:
        row = await self._fetch_one(
            "get_inbox_entry",
            "SELECT document FROM inbox_entries WHERE user_id = ? AND post_id = ?",
            (user_id, post_id),
        )
        if row is None:
            return None
        return decode_one(
            "get_inbox_entry",
            row["document"],
            lambda raw: InboxEntry.from_document(user_id, _parse_object(raw)),
        )

    async def upsert_inbox_entry(self, user_id: str, entry: InboxEntry) -> None:
        async with self._write_lock:
            await self._write_inbox_document(
                "upsert_inbox_entry", user_id, entry.post_id, entry.to_document()
            )

    async def patch_inbox_entry(
        self, user_id: str, post_id: str, patch: Mapping[str, Any]
    ) -> None:
        async with self._write_lock:
            row = await self._fetch_one(
                "patch_inbox_entry",
                "SELECT document FROM inbox_entries WHERE user_id = ? AND post_id = ?",
                (user_id, post_id),
            )
            if row is None:
                raise NotFoundOnPatch(user_id, post_id)

            document = decode_one("patch_inbox_entry", row["document"], _parse_object)
            document.update(patch)
            await self._write_inbox_document("patch_inbox_entry", user_id, post_id, document)

    async def _write_inbox_document(
        self, operation: str, user_id: str, post_id: str, document: dict[str, Any]
    ) -> None:
        await self._execute(
            operation,
            """
            INSERT OR REPLACE INTO inbox_entries (
                user_id, post_id, inbox_priority, triaged_until, document, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                post_id,
                int(document.get(FIELD_INBOX_PRIORITY) or 0),
                document.get(FIELD_TRIAGED_UNTIL),
                json.dumps(document),
                int(time.time()),
            ),
        )


def _parse_object(raw: str) -> dict[str, Any]:
    document = json.loads(raw)
    if not isinstance(document, dict):
        raise TypeError(f"expected a JSON object, got {type(document).__name__}")
    return document


def _parse_post(raw: str) -> Post:
    return Post.from_document(_parse_object(raw))


def _parse_user(raw: str) -> User:
    return User.from_document(_parse_object(raw))
