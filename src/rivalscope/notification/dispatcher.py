"""Decides whether and what to notify for a batch of detected changes."""

from typing import Optional
from urllib.parse import urlparse

from ..detection.types import ChangeRecord, Severity
from ..storage.types import ActivityEntry
from ..utils.logging import get_structured_logger
from .channels import LoggingNotifier, SlackNotifier
from .types import ChangeSummary, MessageResult, NotificationChannel

logger = get_structured_logger(__name__)


def most_severe(records: list[ChangeRecord]) -> ChangeRecord:
    """Highest-severity record; the earliest wins a tie."""
    return sorted(records, key=lambda r: r.severity.rank, reverse=True)[0]


def target_display_name(target) -> str:
    name = getattr(target, "name", None)
    if name:
        return name
    return urlparse(target.url).hostname or target.url


def build_summary(
    target,
    records: list[ChangeRecord],
    app_url: str,
    min_severity: Severity = Severity.HIGH,
) -> Optional[ChangeSummary]:
    """Summarize notifiable records, or None when none reach ``min_severity``."""
    notifiable = [r for r in records if r.severity >= min_severity]
    if not notifiable:
        return None

    top = most_severe(notifiable)
    description = top.description
    if len(notifiable) > 1:
        description = f"{description} ({len(notifiable)} total changes detected)"

    return ChangeSummary(
        target_id=target.id,
        target_name=target_display_name(target),
        target_url=target.url,
        kind=top.kind,
        title=top.title,
        description=description,
        severity=top.severity,
        total_changes=len(notifiable),
        changes_url=f"{app_url.rstrip('/')}/competitors/{target.id}/changes",
    )


class NotificationDispatcher:
    """Sends one summary per crawl and records in-app activity per change."""

    def __init__(
        self,
        channels: Optional[list[NotificationChannel]] = None,
        store=None,
        min_severity: Severity = Severity.HIGH,
        app_url: str = "http://localhost:3000",
    ):
        self.channels = channels if channels is not None else [LoggingNotifier()]
        self.store = store
        self.min_severity = Severity(min_severity)
        self.app_url = app_url

    @classmethod
    def from_settings(cls, settings, store=None):
        notifications = settings.notifications
        channels: list[NotificationChannel] = [LoggingNotifier()]
        token = notifications.slack_bot_token.get_secret_value()
        if token and notifications.slack_channels:
            channels.append(SlackNotifier(token, notifications.slack_channels))
        return cls(
            channels=channels,
            store=store,
            min_severity=Severity(notifications.min_severity),
            app_url=notifications.app_url,
        )

    async def notify(self, target, records: list[ChangeRecord]) -> list[MessageResult]:
        """Deliver a summary of the notifiable records; never raises."""
        summary = build_summary(target, records, self.app_url, self.min_severity)
        if summary is None:
            return []

        results: list[MessageResult] = []
        for channel in self.channels:
            channel_name = getattr(channel, "name", type(channel).__name__)
            try:
                results.extend(await channel.send(summary))
            except Exception as e:
                logger.error(
                    "Notification channel failed",
                    channel=channel_name,
                    target_id=summary.target_id,
                    error=str(e),
                )
                results.append(
                    MessageResult(success=False, channel=channel_name, error_message=str(e))
                )

        await self._record_activity(target, records)

        logger.info(
            "Notifications dispatched",
            target_id=summary.target_id,
            severity=summary.severity.value,
            total_changes=summary.total_changes,
            delivered=sum(1 for r in results if r.success),
        )
        return results

    async def _record_activity(self, target, records: list[ChangeRecord]) -> None:
        if self.store is None:
            return

        for record in records:
            if record.severity < self.min_severity or not record.id:
                continue
            try:
                await self.store.add_activity(
                    ActivityEntry(
                        account_id=getattr(target, "account_id", None),
                        change_id=record.id,
                        title=record.title,
                        message=record.description,
                    )
                )
            except Exception as e:
                logger.warning(
                    "Failed to record activity entry", change_id=record.id, error=str(e)
                )
