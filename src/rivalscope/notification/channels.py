"""Notification delivery channels."""

from typing import Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from ..utils.async_utils import retry_async
from ..utils.logging import get_structured_logger
from .formatting import SlackMessageFormatter
from .types import ChangeSummary, MessageResult

logger = get_structured_logger(__name__)


class SlackNotifier:
    """Posts change summaries to Slack channels."""

    name = "SLACK"

    def __init__(
        self,
        token: str,
        channels: list[str],
        client: Optional[AsyncWebClient] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.channels = list(channels)
        self.client = client or AsyncWebClient(token=token)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.formatter = SlackMessageFormatter()
        self.delivery_stats = {"sent": 0, "failed": 0}

    async def send(self, summary: ChangeSummary) -> list[MessageResult]:
        message_data = self.formatter.format_change_summary(summary)
        results = []
        for channel in self.channels:
            results.append(await self._send_with_retry(channel, message_data))
        return results

    async def _send_with_retry(self, channel: str, message_data: dict) -> MessageResult:
        async def send_attempt():
            return await self.client.chat_postMessage(channel=channel, **message_data)

        try:
            response = await retry_async(
                send_attempt,
                max_retries=self.max_retries,
                delay=self.retry_delay,
                exceptions=(SlackApiError,),
            )
        except SlackApiError as e:
            self.delivery_stats["failed"] += 1
            logger.error("Failed to send Slack message", channel=channel, error=str(e))
            return MessageResult(success=False, channel=channel, error_message=str(e))

        self.delivery_stats["sent"] += 1
        logger.debug("Slack message sent", channel=channel, message_id=response.get("ts"))
        return MessageResult(success=True, channel=channel, message_id=response.get("ts"))


class LoggingNotifier:
    """Writes change summaries to the structured log."""

    name = "LOG"

    def __init__(self):
        self.sent: list[ChangeSummary] = []

    async def send(self, summary: ChangeSummary) -> list[MessageResult]:
        self.sent.append(summary)
        logger.info(
            "Change notification",
            target_id=summary.target_id,
            title=summary.title,
            severity=summary.severity.value,
            total_changes=summary.total_changes,
            summary_text=SlackMessageFormatter.format_plain(summary),
        )
        return [MessageResult(success=True, channel=self.name)]
