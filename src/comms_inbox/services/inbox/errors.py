"""
Inbox Service Errors.

Domain-specific exceptions for dispatch and triage operations.
These errors are independent of the storage backend and the driver
(change-feed watcher, timer, CLI).
"""

from __future__ import annotations

from collections.abc import Iterable


class InboxError(Exception):
    """Base exception for inbox operations."""

    pass


class StoreError(InboxError):
    """Raised when the document store cannot complete an operation."""

    def __init__(self, operation: str, reason: str | None = None):
        self.operation = operation
        self.reason = reason
        msg = f"Store {operation} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StoreReadFailure(StoreError):
    """Raised when a read against the document store fails."""


class StoreWriteFailure(StoreError):
    """Raised when a write against the document store fails."""


class NotFoundOnPatch(StoreError):
    """Raised when patching an inbox entry that does not exist."""

    def __init__(self, user_id: str, post_id: str):
        self.user_id = user_id
        self.post_id = post_id
        super().__init__(
            "patch",
            f"no inbox entry for post {post_id} in inbox of user {user_id}",
        )


class MalformedPost(InboxError):
    """Raised when a post document lacks or mistypes the fields dispatch depends on."""

    def __init__(
        self,
        missing: Iterable[str] = (),
        post_id: str | None = None,
        invalid: Iterable[str] = (),
    ):
        self.missing = tuple(missing)
        self.invalid = tuple(invalid)
        self.post_id = post_id
        label = post_id or "<unknown>"
        problems = []
        if self.missing:
            problems.append(f"is missing required fields: {', '.join(self.missing)}")
        if self.invalid:
            problems.append(f"has wrongly typed fields: {', '.join(self.invalid)}")
        super().__init__(f"Post {label} " + " and ".join(problems))


class SchemaError(StoreError):
    """Raised when the database schema cannot be brought up to date."""

    def __init__(self, reason: str):
        super().__init__("migrate", reason)
