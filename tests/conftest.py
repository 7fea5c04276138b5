"""
Comms Inbox Test Suite - Shared Fixtures and Configuration
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from comms_inbox.core.config import reset_settings
from comms_inbox.core.logging import reset_logging
from comms_inbox.services.inbox import Post, User


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset cached settings and logging state around every test.

    Settings are read once and cached, and package loggers do not propagate
    until reset, which would hide records from caplog.
    """
    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture
def temp_db_path(tmp_path):
    """Path for a throwaway SQLite document store."""
    return tmp_path / "test_inbox.db"


# =============================================================================
# Document Factories
# =============================================================================


def make_post(
    post_id: str = "post-1",
    creator_id: str = "alice",
    channel_id: str = "general",
    text: str = "",
    mentions: dict[str, Any] | None = None,
    sent_at: Any = None,
    channels: dict[str, dict[str, Any]] | None = None,
) -> Post:
    """Create a post that, by default, lists its own channel with a name."""
    if channels is None:
        channels = {channel_id: {"channelName": channel_id}}
    return Post(
        id=post_id,
        creator_id=creator_id,
        channel_id=channel_id,
        text=text,
        channels=channels,
        mentions=mentions or {},
        sent_at=sent_at,
    )


def make_user(
    user_id: str,
    name: str | None = None,
    preferences: dict[str, Any] | None = None,
) -> User:
    """Create a user whose display name defaults to the id."""
    return User(id=user_id, name=name or user_id, notify_preferences=preferences)


@pytest.fixture
def post_factory() -> Callable[..., Post]:
    return make_post


@pytest.fixture
def user_factory() -> Callable[..., User]:
    return make_user
