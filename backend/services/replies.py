"""Normalization of hosted-model replies into plain Python values."""

import json
import re
from typing import Any, Optional

from .errors import ReplyFormatError

FENCE_PATTERN = re.compile(r"```(?:json)?\n?")


def reply_text(reply: Any) -> str:
    """Return a text reply trimmed, or "" for anything that is not text."""
    if isinstance(reply, str):
        return reply.strip()
    return ""


def parse_json_reply(reply: Any) -> Optional[dict]:
    """
    Turn a reply into a dict, or None when the model answered null.

    Accepts an already structured object, or a string that may be
    wrapped in a fenced code block.

    Raises:
        ReplyFormatError: The reply is neither a mapping nor JSON text.
    """
    if isinstance(reply, dict):
        return reply

    if not isinstance(reply, str):
        raise ReplyFormatError(f"Unexpected reply type: {type(reply).__name__}")

    cleaned = FENCE_PATTERN.sub("", reply.strip()).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ReplyFormatError(f"Reply is not JSON: {e.msg}") from e

    if parsed is None or isinstance(parsed, dict):
        return parsed

    raise ReplyFormatError(f"Unexpected JSON value: {type(parsed).__name__}")
