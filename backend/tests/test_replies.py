"""
Test Module: test_replies.py
Description: Unit tests for hosted-model reply normalization.
"""

import pytest

from services.errors import ReplyFormatError
from services.replies import parse_json_reply, reply_text


class TestParseJsonReply:

    def test_structured_reply_passes_through(self):
        reply = {"amount": 45, "merchant": "Chipotle"}
        assert parse_json_reply(reply) is reply

    def test_plain_json_string(self):
        assert parse_json_reply('{"amount": 45, "merchant": "Chipotle"}') == {
            "amount": 45, "merchant": "Chipotle"
        }

    def test_fenced_json_string(self):
        reply = '```json\n{"amount": 12.5, "merchant": "Uber"}\n```'
        assert parse_json_reply(reply) == {"amount": 12.5, "merchant": "Uber"}

    def test_bare_fence(self):
        reply = '```\n{"amount": 3, "merchant": "Kiosk"}\n```'
        assert parse_json_reply(reply)["merchant"] == "Kiosk"

    def test_null_sentinel_returns_none(self):
        assert parse_json_reply("null") is None

    @pytest.mark.parametrize("reply", [
        "Sure! You spent $45 at Chipotle.",
        "[1, 2]",
        None,
        42,
    ])
    def test_unusable_replies_raise(self, reply):
        with pytest.raises(ReplyFormatError):
            parse_json_reply(reply)


class TestReplyText:

    def test_strips_whitespace(self):
        assert reply_text("  Food\n") == "Food"

    def test_non_text_is_empty(self):
        assert reply_text({"category": "Food"}) == ""
        assert reply_text(None) == ""
