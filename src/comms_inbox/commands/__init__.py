"""
Comms Inbox Commands

Command implementations for the CLI.
"""

from . import inbox

__all__ = ["inbox"]
