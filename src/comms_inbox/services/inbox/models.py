"""
Inbox Data Models.

Dataclasses for posts, users and per-user inbox entries, plus converters to
and from the camelCase documents held by the document store.

Unknown document fields are kept in ``extra`` so that a document read and
written back through these models is not truncated.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import MalformedPost

# Sentinel value of ``sentAt`` while a post is queued but not yet sent
SENT_AT_PENDING = "pending"

# Document field names
FIELD_ID = "id"
FIELD_CREATOR_ID = "creatorId"
FIELD_CHANNEL_ID = "channelId"
FIELD_TEXT = "text"
FIELD_CHANNELS = "channels"
FIELD_MENTIONS = "mentions"
FIELD_SENT_AT = "sentAt"
FIELD_CHANNEL_NAME = "channelName"
FIELD_NAME = "name"
FIELD_NOTIFY_PREFERENCES = "notifyPreferences"
FIELD_INBOX_PRIORITY = "inboxPriority"
FIELD_TRIAGED_UNTIL = "triagedUntil"

_POST_FIELDS = frozenset(
    {
        FIELD_ID,
        FIELD_CREATOR_ID,
        FIELD_CHANNEL_ID,
        FIELD_TEXT,
        FIELD_CHANNELS,
        FIELD_MENTIONS,
        FIELD_SENT_AT,
    }
)
_INBOX_ONLY_FIELDS = frozenset({FIELD_INBOX_PRIORITY, FIELD_TRIAGED_UNTIL})
_USER_FIELDS = frozenset({FIELD_ID, FIELD_NAME, FIELD_NOTIFY_PREFERENCES})


class NotifyPreference(Enum):
    """
    Per-channel notification preference.

    DEFAULT covers a missing or empty preference. Any value the product does
    not define maps to UNRECOGNIZED, which never notifies.
    """

    DEFAULT = "default"
    INVOLVED = "involved"
    ALL = "all"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Any) -> NotifyPreference:
        """Map a raw stored preference value onto the closed set of preferences."""
        if not raw:
            return cls.DEFAULT
        if raw == cls.INVOLVED.value:
            return cls.INVOLVED
        if raw == cls.ALL.value:
            return cls.ALL
        return cls.UNRECOGNIZED


@dataclass
class Post:
    """A published (or draft) post in a channel."""

    id: str
    creator_id: str
    channel_id: str
    text: str = ""
    channels: dict[str, dict[str, Any]] = field(default_factory=dict)
    mentions: dict[str, Any] = field(default_factory=dict)
    sent_at: Any = None  # None, SENT_AT_PENDING, or epoch ms
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sendable(self) -> bool:
        """True when ``sentAt`` is set and no longer pending."""
        return bool(self.sent_at) and self.sent_at != SENT_AT_PENDING

    def mentions_user(self, user_id: str) -> bool:
        """Structured mention test: the user id is a key of the mention map."""
        return user_id in self.mentions

    def has_channel_name(self, channel_id: str) -> bool:
        """True when the channel metadata for ``channel_id`` carries a truthy name."""
        metadata = self.channels.get(channel_id)
        if not isinstance(metadata, Mapping):
            return False
        return bool(metadata.get(FIELD_CHANNEL_NAME))

    def validate(self) -> None:
        """
        Check the fields dispatch depends on.

        Raises:
            MalformedPost: If id, channel id or creator id is missing
        """
        missing = [
            name
            for name, value in (
                (FIELD_ID, self.id),
                (FIELD_CHANNEL_ID, self.channel_id),
                (FIELD_CREATOR_ID, self.creator_id),
            )
            if not value
        ]
        if missing:
            raise MalformedPost(missing, post_id=self.id or None)

    def snapshot(self) -> Post:
        """Deep copy, so later edits to this post never reach a written entry."""
        return copy.deepcopy(self)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Post:
        """
        Build a post from a store document.

        Inbox-only fields (priority, triage deadline) are dropped so that a
        post recovered from an inbox entry is a plain post again.

        Raises:
            MalformedPost: If the channel or mention map is not a mapping
        """
        channels = doc.get(FIELD_CHANNELS) or {}
        mentions = doc.get(FIELD_MENTIONS) or {}
        invalid = [
            name
            for name, value in ((FIELD_CHANNELS, channels), (FIELD_MENTIONS, mentions))
            if not isinstance(value, Mapping)
        ]
        if invalid:
            raise MalformedPost(post_id=str(doc.get(FIELD_ID) or "") or None, invalid=invalid)

        return cls(
            id=str(doc.get(FIELD_ID) or ""),
            creator_id=str(doc.get(FIELD_CREATOR_ID) or ""),
            channel_id=str(doc.get(FIELD_CHANNEL_ID) or ""),
            text=doc.get(FIELD_TEXT) or "",
            channels=copy.deepcopy(dict(channels)),
            mentions=copy.deepcopy(dict(mentions)),
            sent_at=doc.get(FIELD_SENT_AT),
            extra={
                key: copy.deepcopy(value)
                for key, value in doc.items()
                if key not in _POST_FIELDS and key not in _INBOX_ONLY_FIELDS
            },
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = copy.deepcopy(self.extra)
        doc.update(
            {
                FIELD_ID: self.id,
                FIELD_CREATOR_ID: self.creator_id,
                FIELD_CHANNEL_ID: self.channel_id,
                FIELD_TEXT: self.text,
                FIELD_CHANNELS: copy.deepcopy(self.channels),
                FIELD_MENTIONS: copy.deepcopy(self.mentions),
            }
        )
        if self.sent_at is not None:
            doc[FIELD_SENT_AT] = self.sent_at
        return doc


def is_sendable(post: Post | None) -> bool:
    """A missing post (e.g. on creation) is never sendable."""
    return post is not None and post.is_sendable


@dataclass
class User:
    """A workspace member who may receive inbox notifications."""

    id: str
    name: str
    # Channel id -> raw preference; a stored value that is not a mapping is kept as-is
    notify_preferences: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def preference_for(self, channel_id: str) -> NotifyPreference:
        """
        Resolve the user's preference for ``channel_id``.

        A preference map that is set but is not a mapping cannot be read,
        so every channel resolves to UNRECOGNIZED and never notifies.
        """
        preferences = self.notify_preferences
        if not preferences:
            return NotifyPreference.DEFAULT
        if not isinstance(preferences, Mapping):
            return NotifyPreference.UNRECOGNIZED
        return NotifyPreference.parse(preferences.get(channel_id))

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> User:
        preferences = doc.get(FIELD_NOTIFY_PREFERENCES)
        if isinstance(preferences, Mapping):
            preferences = dict(preferences)
        return cls(
            id=str(doc.get(FIELD_ID) or ""),
            name=str(doc.get(FIELD_NAME) or ""),
            notify_preferences=copy.deepcopy(preferences),
            extra={
                key: copy.deepcopy(value) for key, value in doc.items() if key not in _USER_FIELDS
            },
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = copy.deepcopy(self.extra)
        doc[FIELD_ID] = self.id
        doc[FIELD_NAME] = self.name
        if self.notify_preferences is not None:
            doc[FIELD_NOTIFY_PREFERENCES] = copy.deepcopy(self.notify_preferences)
        return doc


@dataclass
class InboxEntry:
    """
    A post copied into one user's inbox.

    The post is a snapshot taken at write time; it does not follow later
    edits of the source post.
    """

    user_id: str
    post: Post
    inbox_priority: int
    triaged_until: int | None = None

    @property
    def post_id(self) -> str:
        return self.post.id

    def is_triage_expired(self, now: int) -> bool:
        """
        True when a triage deadline is set and lies strictly before ``now``.

        Only numeric (epoch ms) deadlines are compared; a deadline of any
        other type never expires.
        """
        deadline = self.triaged_until
        if isinstance(deadline, bool) or not isinstance(deadline, (int, float)):
            return False
        return deadline < now

    @classmethod
    def from_document(cls, user_id: str, doc: Mapping[str, Any]) -> InboxEntry:
        return cls(
            user_id=user_id,
            post=Post.from_document(doc),
            inbox_priority=int(doc.get(FIELD_INBOX_PRIORITY) or 0),
            triaged_until=doc.get(FIELD_TRIAGED_UNTIL),
        )

    def to_document(self) -> dict[str, Any]:
        doc = self.post.to_document()
        doc[FIELD_INBOX_PRIORITY] = self.inbox_priority
        if self.triaged_until is not None:
            doc[FIELD_TRIAGED_UNTIL] = self.triaged_until
        return doc
