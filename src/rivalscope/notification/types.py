"""Type definitions for the notification module."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from ..detection.types import ChangeKind, Severity


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


@dataclass
class ChangeSummary:
    """What one notification says about a batch of changes for a target."""

    target_id: str
    target_name: str
    target_url: str
    kind: ChangeKind
    title: str
    description: str
    severity: Severity
    total_changes: int
    changes_url: str
    detected_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class MessageResult:
    """Result of sending a message."""

    success: bool
    channel: Optional[str] = None
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: datetime = field(default_factory=datetime.utcnow)


class NotificationChannel(Protocol):
    """An outbound delivery channel."""

    name: str

    async def send(self, summary: ChangeSummary) -> list[MessageResult]:
        ...
