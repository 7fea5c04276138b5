"""
Comms Inbox Services

- inbox: Dispatch, preference evaluation, inbox writes and triage sweeps
- store: Document store protocol and implementations
"""
