"""Inbox priority ranking for a (user, post) pair."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Post, User

# Lower value = more urgent
PRIORITY_NAME_MENTION = 300
PRIORITY_STRUCTURED_MENTION = 400
PRIORITY_AMBIENT = 500

NAME_MENTION_PREFIX = "@@"


def name_mention_token(user: User) -> str:
    return f"{NAME_MENTION_PREFIX}{user.name}"


def classify(user: User, post: Post) -> int:
    """
    Rank a post for a user's inbox.

    First match wins:
    - post text contains ``@@<name>`` (plain substring test) -> 300
    - user id is a key of the post's mention map -> 400
    - otherwise -> 500

    Args:
        user: Inbox owner
        post: Post being added

    Returns:
        One of PRIORITY_NAME_MENTION, PRIORITY_STRUCTURED_MENTION, PRIORITY_AMBIENT
    """
    if name_mention_token(user) in post.text:
        return PRIORITY_NAME_MENTION
    if post.mentions_user(user.id):
        return PRIORITY_STRUCTURED_MENTION
    return PRIORITY_AMBIENT
