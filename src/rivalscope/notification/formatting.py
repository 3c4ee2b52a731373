"""Message formatting for change notifications."""

from typing import Any

from .types import ChangeSummary

SEVERITY_STYLE = {
    "LOW": {"emoji": "🟡", "color": "#FFA500"},
    "MEDIUM": {"emoji": "🟠", "color": "#FF6B35"},
    "HIGH": {"emoji": "🔴", "color": "#FF0000"},
    "CRITICAL": {"emoji": "🚨", "color": "#8B0000"},
}


class SlackMessageFormatter:
    """Formats change summaries for Slack delivery."""

    @staticmethod
    def format_change_summary(summary: ChangeSummary) -> dict[str, Any]:
        severity = summary.severity.value
        style = SEVERITY_STYLE.get(severity, SEVERITY_STYLE["MEDIUM"])
        detected = summary.detected_at.strftime("%Y-%m-%d %H:%M:%S UTC")

        text = (
            f"{style['emoji']} {summary.title} on {summary.target_name}\n"
            f"{summary.description}\n"
            f"Severity: {severity}"
        )

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{style['emoji']} {summary.title} - {severity}",
                },
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Competitor:*\n{summary.target_name}"},
                    {
                        "type": "mrkdwn",
                        "text": f"*URL:*\n<{summary.target_url}|{summary.target_url}>",
                    },
                    {"type": "mrkdwn", "text": f"*Change:*\n{summary.kind.value}"},
                    {"type": "mrkdwn", "text": f"*Detected:*\n{detected}"},
                ],
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Description:*\n{summary.description}"},
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View changes"},
                        "url": summary.changes_url,
                    }
                ],
            },
        ]

        return {
            "text": text,
            "blocks": blocks,
            "attachments": [{"color": style["color"], "fallback": text}],
        }

    @staticmethod
    def format_plain(summary: ChangeSummary) -> str:
        return (
            f"[{summary.severity.value}] {summary.target_name}: {summary.title}. "
            f"{summary.description} {summary.changes_url}"
        )
