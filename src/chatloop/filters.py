"""Reasoning-span removal for model output."""
from __future__ import annotations


THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_LEADING_WHITESPACE = " \n\r\t"


def scrub(raw_text: str) -> str:
    """Remove ``<think>...</think>`` spans and trim leading whitespace.

    An open marker with no close marker after it loses only the marker
    itself, so output truncated mid-reasoning keeps its text.
    """
    result = raw_text
    start = result.find(THINK_OPEN)
    while start != -1:
        end = result.find(THINK_CLOSE, start)
        if end != -1:
            result = result[:start] + result[end + len(THINK_CLOSE):]
        else:
            result = result[:start] + result[start + len(THINK_OPEN):]
        start = result.find(THINK_OPEN)
    return result.lstrip(_LEADING_WHITESPACE)
