"""Prompt builders for the ChatML turn format."""
from __future__ import annotations

from typing import Iterable

from .session import Turn


IM_START = "<|im_start|>"
IM_END = "<|im_end|>"

USER_OPEN = f"{IM_START}user\n"
ASSISTANT_OPEN = f"{IM_START}assistant\n"
TURN_CLOSE = f"{IM_END}\n"


def user_block(text: str) -> str:
    return f"{USER_OPEN}{text}{TURN_CLOSE}"


def assistant_block(text: str) -> str:
    return f"{ASSISTANT_OPEN}{text}{TURN_CLOSE}"


def fill_template(content: str) -> str:
    """Single-turn prompt with no history, left open for the assistant."""
    return user_block(content) + ASSISTANT_OPEN


def render(history: Iterable[Turn], new_input: str) -> str:
    parts: list[str] = []
    for turn in history:
        parts.append(user_block(turn.user_text))
        parts.append(assistant_block(turn.assistant_text))
    parts.append(fill_template(new_input))
    return "".join(parts)
