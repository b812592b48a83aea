"""Engine protocol and dataclasses."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Literal, Protocol, Sequence


NO_TOKEN = -1


@dataclass
class DeviceSpec:
    kind: Literal["cuda", "cpu"]
    gpu_index: int | None


class EngineErrorCode(enum.Enum):
    OK = 0
    DEVICE_UNAVAILABLE = 1
    TOKENIZER_LOAD_FAILED = 2
    MODEL_LOAD_FAILED = 3


@dataclass(frozen=True)
class InitStatus:
    code: EngineErrorCode = EngineErrorCode.OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code is EngineErrorCode.OK

    @classmethod
    def success(cls) -> "InitStatus":
        return cls()

    @classmethod
    def failure(cls, code: EngineErrorCode, message: str) -> "InitStatus":
        return cls(code=code, message=message)


class InferenceEngine(Protocol):
    """Capabilities the generation loop needs from a model backend.

    ``positional_buffer`` returns a mutable buffer whose index 0 holds the
    position of the step being run. ``predict_step`` advances the model by
    one position and returns the next candidate token; in prompt mode the
    returned value is only a placeholder and callers must not treat it as
    content.
    """

    def init(self, device: DeviceSpec) -> InitStatus:
        ...

    def tokenize(self, text: str) -> list[int]:
        ...

    def embed(self, tokens: Sequence[int]) -> Any:
        ...

    def positional_buffer(self) -> Any:
        ...

    def fill_input(self, pos_buffer: Any, embedding: Any, is_prompt: bool) -> Any:
        ...

    def predict_step(self, step_input: Any, pos_buffer: Any, is_prompt: bool) -> int:
        ...

    def is_sentence_end(self, token: int) -> bool:
        ...

    def detokenize(self, tokens: Sequence[int]) -> str:
        ...
