"""
Tests for the terminal renderer.
"""

import io

from chat_relay.cli import TerminalRenderer
from chat_relay.exchange import DisplayMessage


def snapshot(*messages):
    return [m.model_copy() for m in messages]


class TestTerminalRenderer:
    """Only new text is written."""

    def test_prints_reply_suffixes(self):
        out = io.StringIO()
        render = TerminalRenderer(out)
        user = DisplayMessage(text="hello", sender="user")
        ai = DisplayMessage(sender="ai")

        render(snapshot(user, ai))
        ai.text = "Hi"
        render(snapshot(user, ai))
        ai.text = "Hi there"
        render(snapshot(user, ai))
        render(snapshot(user, ai))
        render.end_exchange()

        assert out.getvalue() == "Hi there\n"

    def test_prints_system_message_once(self):
        out = io.StringIO()
        render = TerminalRenderer(out)
        user = DisplayMessage(text="hello", sender="user")
        system = DisplayMessage(text="Network error occurred.", sender="system")

        render(snapshot(user, system))
        render(snapshot(user, system))
        render.end_exchange()

        assert out.getvalue() == "[system] Network error occurred.\n"

    def test_partial_reply_then_failure_starts_new_line(self):
        out = io.StringIO()
        render = TerminalRenderer(out)
        ai = DisplayMessage(text="Hi th", sender="ai")
        system = DisplayMessage(text="Network error occurred.", sender="system")

        render(snapshot(ai))
        render(snapshot(system))

        assert out.getvalue() == "Hi th\n[system] Network error occurred."
