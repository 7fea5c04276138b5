"""
Notification Preference Evaluation.

Decides whether a post should reach a user's inbox, based on the user's
preference for the post's channel:

- DEFAULT: only when the user is a structured mention of the post
- INVOLVED: when the user has been mentioned by any post in the channel
- ALL: always
- UNRECOGNIZED: never
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...core.logging import get_logger
from .models import NotifyPreference

if TYPE_CHECKING:
    from ..store.protocol import DocumentStore
    from .models import Post, User

logger = get_logger(__name__)


class PreferenceEvaluator:
    """Evaluates per-channel notification preferences against the store."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def has_channel_mentions(self, user_id: str, channel_id: str) -> bool:
        """True when any post carried by the channel mentions ``user_id``."""
        posts = await self.store.list_posts_in_channel(channel_id)
        return any(post.mentions_user(user_id) for post in posts)

    async def should_notify(self, user: User, post: Post) -> bool:
        """
        Decide whether ``post`` belongs in ``user``'s inbox.

        A textual ``@@name`` reference alone does not satisfy the default
        preference; only a structured mention does.

        Raises:
            StoreReadFailure: If the channel mention history cannot be read
        """
        preference = user.preference_for(post.channel_id)

        if preference is NotifyPreference.DEFAULT:
            return post.mentions_user(user.id)

        if preference is NotifyPreference.INVOLVED:
            return await self.has_channel_mentions(user.id, post.channel_id)

        if preference is NotifyPreference.ALL:
            return True

        logger.debug(
            "Unrecognized notification preference for channel %s",
            post.channel_id,
            extra={"user_id": user.id, "post_id": post.id},
        )
        return False
