"""
Comms Inbox - Notification Dispatch & Inbox Triage

Decides, for every newly sent post, which users get it in their personal
inbox and at what priority, and clears expired triage (snooze) deadlines on
a fixed cadence.

Usage as library:
    from comms_inbox.services.inbox import InboxEngine
    from comms_inbox.services.store import SQLiteDocumentStore

    store = SQLiteDocumentStore()
    await store.initialize()
    engine = InboxEngine(store)
    await engine.on_post_updated(before_doc, after_doc)
    await engine.on_schedule_tick()

Usage as CLI:
    python -m comms_inbox seed fixtures.json
    python -m comms_inbox dispatch before.json after.json
    python -m comms_inbox sweep
    python -m comms_inbox inbox <user_id>

Package structure:
    comms_inbox/
    ├── core/           # Settings, logging, time helpers
    ├── services/
    │   ├── inbox/      # Dispatch & triage logic
    │   └── store/      # Document store protocol, in-memory and SQLite stores
    └── commands/       # CLI command implementations
"""

__version__ = "0.1.0"
