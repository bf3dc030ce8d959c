"""Slack Web API integration for job notifications."""

import asyncio
import logging

logger = logging.getLogger(__name__)

DETAIL_LIMIT = 200


class SlackError(Exception):
    """Raised when a Slack operation fails."""


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def post_blocks(client, channel: str, text: str, blocks: list[dict]) -> str:
    """Post a Block Kit message; returns the message timestamp."""
    if client is None:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")
    response = client.chat_postMessage(channel=channel, text=text, blocks=blocks)
    return response["ts"]


def format_job_notification(
    ticket_title: str,
    mode: str,
    succeeded: bool,
    detail: str | None = None,
) -> list[dict]:
    """Format a job completion notice as Slack blocks."""
    emoji = ":white_check_mark:" if succeeded else ":x:"
    outcome = "finished" if succeeded else "failed"
    text = f"{emoji} *{mode.capitalize()} {outcome}*\n*{ticket_title}*"
    if detail:
        text += f"\n{detail[:DETAIL_LIMIT]}"
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


class SlackNotifier:
    """Posts job outcomes to one channel. Every call is best-effort."""

    def __init__(self, token: str | None, channel: str | None, client=None):
        self.channel = channel
        self.client = client if client is not None else get_client(token)

    @property
    def enabled(self) -> bool:
        return bool(self.client is not None and self.channel)

    async def notify(
        self,
        ticket_title: str,
        mode: str,
        succeeded: bool,
        detail: str | None = None,
    ) -> None:
        if not self.enabled:
            return
        blocks = format_job_notification(ticket_title, mode, succeeded, detail)
        text = f"{mode} {'finished' if succeeded else 'failed'}: {ticket_title}"
        try:
            await asyncio.to_thread(post_blocks, self.client, self.channel, text, blocks)
        except Exception:
            logger.exception("Failed to send Slack notification for %r", ticket_title)
