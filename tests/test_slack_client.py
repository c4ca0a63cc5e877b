"""Unit tests for the Slack WebClient wrapper."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_broker.slack_client import SlackClient  # noqa: E402


class DummyWebClient:
    def __init__(self):
        self.calls = []

    def chat_postMessage(self, **kwargs):
        self.calls.append(("post", kwargs))
        return {"ok": True, "ts": "1700000000.000100"}

    def chat_update(self, **kwargs):
        self.calls.append(("update", kwargs))
        return {"ok": True, "ts": kwargs["ts"]}


def test_requires_token_or_client():
    with pytest.raises(ValueError):
        SlackClient()


def test_token_builds_web_client_with_timeout():
    client = SlackClient(token="xoxb-test", timeout=7)

    assert client.client.token == "xoxb-test"
    assert client.client.timeout == 7


def test_post_message_omits_thread_when_not_given():
    dummy = DummyWebClient()
    client = SlackClient(client=dummy)

    response = client.post_message(channel="C123", text="hello", blocks=[{"type": "section"}])

    assert dummy.calls == [
        ("post", {"channel": "C123", "text": "hello", "blocks": [{"type": "section"}]}),
    ]
    assert response["ts"] == "1700000000.000100"
    assert client.client is dummy


def test_post_message_replies_in_thread():
    dummy = DummyWebClient()
    client = SlackClient(client=dummy)

    client.post_message(channel="C123", text="hello", blocks=(), thread_ts="111.222")

    assert dummy.calls[-1][1]["thread_ts"] == "111.222"
    assert dummy.calls[-1][1]["blocks"] == []


def test_update_message_uses_underlying_client():
    dummy = DummyWebClient()
    client = SlackClient(client=dummy)

    response = client.update_message(
        channel="C123",
        ts="123.456",
        text="updated",
        blocks=[{"type": "section", "text": {"type": "mrkdwn", "text": "Hi"}}],
    )

    assert dummy.calls[-1] == (
        "update",
        {
            "channel": "C123",
            "ts": "123.456",
            "text": "updated",
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": "Hi"}}],
        },
    )
    assert response["ok"] is True
