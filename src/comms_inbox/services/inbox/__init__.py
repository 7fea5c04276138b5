"""
Inbox Dispatch & Triage.

Decides which posts land in which users' inboxes, at what priority, and
returns snoozed entries to normal once their triage deadline passes.

Components:
- classify: Priority ranking (name mention / structured mention / ambient)
- PreferenceEvaluator: Per-channel notification preference checks
- InboxWriter: Fire-and-forget inbox creates and patches
- DispatchCoordinator: Edge-triggered per-recipient fan-out
- TriageSweeper: Periodic triage deadline reset
- PendingWork: Round tracking, timeouts and failure capture
- InboxEngine: Driver-facing facade

Usage:
    from comms_inbox.services.inbox import InboxEngine
    from comms_inbox.services.store import InMemoryDocumentStore

    engine = InboxEngine(InMemoryDocumentStore())
    round_ = await engine.on_post_updated(before_doc, after_doc)
    if round_:
        await round_.settled()
"""

from .dispatch import DispatchCoordinator, DispatchMetrics, DispatchRound
from .engine import InboxEngine, coerce_post
from .errors import (
    InboxError,
    MalformedPost,
    NotFoundOnPatch,
    SchemaError,
    StoreError,
    StoreReadFailure,
    StoreWriteFailure,
)
from .models import (
    SENT_AT_PENDING,
    InboxEntry,
    NotifyPreference,
    Post,
    User,
    is_sendable,
)
from .pending import OperationResult, PendingWork
from .preferences import PreferenceEvaluator
from .priority import (
    PRIORITY_AMBIENT,
    PRIORITY_NAME_MENTION,
    PRIORITY_STRUCTURED_MENTION,
    classify,
)
from .sweeper import SweepRound, SweepStats, TriageSweeper
from .writer import InboxWriter, build_entry

__all__ = [
    # Models
    "Post",
    "User",
    "InboxEntry",
    "NotifyPreference",
    "SENT_AT_PENDING",
    "is_sendable",
    # Errors
    "InboxError",
    "StoreError",
    "StoreReadFailure",
    "StoreWriteFailure",
    "NotFoundOnPatch",
    "MalformedPost",
    "SchemaError",
    # Priority
    "classify",
    "PRIORITY_NAME_MENTION",
    "PRIORITY_STRUCTURED_MENTION",
    "PRIORITY_AMBIENT",
    # Components
    "PreferenceEvaluator",
    "InboxWriter",
    "build_entry",
    "DispatchCoordinator",
    "DispatchMetrics",
    "DispatchRound",
    "TriageSweeper",
    "SweepRound",
    "SweepStats",
    "PendingWork",
    "OperationResult",
    "InboxEngine",
    "coerce_post",
]
