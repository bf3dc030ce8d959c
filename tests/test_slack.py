"""Tests for Slack job notifications."""

import asyncio
from unittest.mock import MagicMock

import pytest

from ticket_to_pr.integrations.slack import (
    SlackError,
    SlackNotifier,
    format_job_notification,
    get_client,
    post_blocks,
)


class TestFormat:
    def test_success(self):
        blocks = format_job_notification("Fix login bug", "review", True, "Ease 7/10")
        text = blocks[0]["text"]["text"]
        assert ":white_check_mark:" in text
        assert "Review finished" in text
        assert "Ease 7/10" in text

    def test_failure_detail_is_capped(self):
        blocks = format_job_notification("Fix login bug", "execute", False, "x" * 500)
        text = blocks[0]["text"]["text"]
        assert ":x:" in text
        assert "Execute failed" in text
        assert text.endswith("x" * 200)
        assert "x" * 201 not in text


class TestSlackNotifier:
    def test_no_client_without_token(self):
        assert get_client(None) is None
        with pytest.raises(SlackError, match="not configured"):
            post_blocks(None, "#builds", "hi", [])

    def test_disabled_without_channel(self):
        client = MagicMock()
        notifier = SlackNotifier("xoxb-token", None, client=client)
        assert not notifier.enabled
        asyncio.run(notifier.notify("Fix login bug", "review", True))
        client.chat_postMessage.assert_not_called()

    def test_disabled_without_token(self):
        assert not SlackNotifier(None, "#builds").enabled

    def test_notify(self):
        client = MagicMock()
        client.chat_postMessage.return_value = {"ok": True, "channel": "C1", "ts": "123.456"}
        notifier = SlackNotifier("xoxb-token", "#builds", client=client)

        asyncio.run(notifier.notify("Fix login bug", "execute", True, "https://pr/1"))

        kwargs = client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "#builds"
        assert kwargs["text"] == "execute finished: Fix login bug"
        assert "https://pr/1" in kwargs["blocks"][0]["text"]["text"]

    def test_errors_are_swallowed(self):
        client = MagicMock()
        client.chat_postMessage.side_effect = RuntimeError("channel_not_found")
        notifier = SlackNotifier("xoxb-token", "#builds", client=client)
        asyncio.run(notifier.notify("Fix login bug", "review", False, "boom"))
        client.chat_postMessage.assert_called_once()
