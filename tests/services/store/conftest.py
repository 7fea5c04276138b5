"""Fixtures for document store tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio

from comms_inbox.services.store import (
    DocumentStore,
    InMemoryDocumentStore,
    SQLiteDocumentStore,
)


@pytest_asyncio.fixture
async def sqlite_store(temp_db_path: Path) -> AsyncGenerator[SQLiteDocumentStore, None]:
    """Create and initialize a test store."""
    store = SQLiteDocumentStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def document_store(request, temp_db_path: Path) -> AsyncGenerator[DocumentStore, None]:
    """Every DocumentStore implementation, for behavior both must share."""
    if request.param == "memory":
        store: DocumentStore = InMemoryDocumentStore()
    else:
        store = SQLiteDocumentStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()
