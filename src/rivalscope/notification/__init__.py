"""Change notification delivery."""

from .channels import LoggingNotifier, SlackNotifier
from .dispatcher import NotificationDispatcher, build_summary, most_severe
from .formatting import SlackMessageFormatter
from .types import ChangeSummary, MessageResult, NotificationChannel, NotificationError

__all__ = [
    "LoggingNotifier",
    "SlackNotifier",
    "NotificationDispatcher",
    "build_summary",
    "most_severe",
    "SlackMessageFormatter",
    "ChangeSummary",
    "MessageResult",
    "NotificationChannel",
    "NotificationError",
]
