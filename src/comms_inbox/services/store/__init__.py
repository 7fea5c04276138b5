"""
Document Store - Storage for posts, users and inbox entries.

Key Components:
- DocumentStore: Protocol consumed by the inbox core
- InMemoryDocumentStore: Dictionary-backed store for tests and local use
- SQLiteDocumentStore: aiosqlite implementation, schema versioned via PRAGMA user_version

Usage:
    from comms_inbox.services.store import SQLiteDocumentStore

    store = SQLiteDocumentStore()
    await store.initialize()
    inbox = await store.get_user_inbox("user-1")
"""

from .memory import InMemoryDocumentStore
from .protocol import DocumentStore
from .schema import Migration, get_schema_version, load_migrations, upgrade_schema
from .sqlite import SQLiteDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
    "Migration",
    "load_migrations",
    "get_schema_version",
    "upgrade_schema",
]
