"""Fatal error types."""
from __future__ import annotations

from .engines.base import EngineErrorCode


class ChatLoopError(RuntimeError):
    pass


class ConfigError(ChatLoopError):
    pass


class EngineInitError(ChatLoopError):
    def __init__(self, code: EngineErrorCode, message: str = "") -> None:
        self.code = code
        detail = f": {message}" if message else ""
        super().__init__(f"Engine init failed with error code {code.value}{detail}")


class EmptyPromptError(ChatLoopError):
    def __init__(self, prompt: str) -> None:
        self.prompt = prompt
        super().__init__(f"Prompt produced no tokens (prompt length {len(prompt)} chars)")
