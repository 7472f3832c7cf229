"""Notification port — abstract interface for pushing messages to users.

The reminder scheduler depends on this protocol, never on a specific
messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationError(Exception):
    """Raised when a message could not be delivered."""


class NotificationPort(Protocol):
    """Abstract push interface used by the reminder scheduler."""

    async def send_message(self, user_id: int, text: str) -> None: ...
