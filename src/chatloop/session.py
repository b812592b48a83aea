"""Bounded conversation history."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterator

import structlog


logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_CAPACITY = 5


@dataclass(frozen=True)
class Turn:
    user_text: str
    assistant_text: str


class ConversationHistory:
    """Chronological turns, oldest first, holding at most ``capacity`` turns."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._turns: deque[Turn] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def turns(self) -> list[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))

    def append(self, turn: Turn) -> Turn | None:
        self._turns.append(turn)
        if len(self._turns) > self._capacity:
            return self._turns.popleft()
        return None

    def clear(self) -> None:
        self._turns.clear()


def commit(history: ConversationHistory, user_text: str, assistant_text: str) -> None:
    evicted = history.append(Turn(user_text=user_text, assistant_text=assistant_text))
    if evicted is not None:
        logger.debug("history_evicted", capacity=history.capacity)


def clear(history: ConversationHistory) -> None:
    dropped = len(history)
    history.clear()
    logger.info("history_cleared", dropped_turns=dropped)
