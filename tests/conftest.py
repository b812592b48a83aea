from __future__ import annotations

from typing import Sequence

import pytest

from chatloop.engines.base import NO_TOKEN, DeviceSpec, EngineErrorCode, InitStatus


IM_END = 151645
IM_START = 151644
SENTINELS = (IM_END, IM_START)


class FakeEngine:
    """Character-level engine that replays scripted replies.

    Prompt text tokenizes to code points unless ``prompt_tokens`` is given.
    Each ``tokenize`` call loads the next reply; decode steps emit its code
    points and then ``eos``.
    """

    def __init__(
        self,
        replies: Sequence[str] = ("",),
        eos: int = IM_END,
        prompt_tokens: list[int] | None = None,
        decode_tokens: list[int] | None = None,
        init_status: InitStatus | None = None,
    ) -> None:
        self.replies = list(replies)
        self.eos = eos
        self.prompt_tokens = prompt_tokens
        self.decode_tokens = decode_tokens
        self.init_status = init_status if init_status is not None else InitStatus.success()
        self.prompts: list[str] = []
        self.steps: list[tuple[int, bool, int]] = []
        self.positions_written: list[int] = []
        self.init_calls: list[DeviceSpec] = []
        self._script: list[int] = []
        self._pos = _RecordingBuffer(self.positions_written)

    def init(self, device: DeviceSpec) -> InitStatus:
        self.init_calls.append(device)
        return self.init_status

    def tokenize(self, text: str) -> list[int]:
        self.prompts.append(text)
        if self.decode_tokens is not None:
            self._script = list(self.decode_tokens)
        else:
            index = min(len(self.prompts) - 1, len(self.replies) - 1)
            self._script = [ord(c) for c in self.replies[index]]
        if self.prompt_tokens is not None:
            return list(self.prompt_tokens)
        return [ord(c) for c in text]

    def embed(self, tokens: Sequence[int]) -> list[int]:
        return list(tokens)

    def positional_buffer(self) -> "_RecordingBuffer":
        return self._pos

    def fill_input(self, pos_buffer, embedding: list[int], is_prompt: bool) -> int:
        return embedding[pos_buffer[0]] if is_prompt else embedding[0]

    def predict_step(self, step_input: int, pos_buffer, is_prompt: bool) -> int:
        self.steps.append((pos_buffer[0], is_prompt, step_input))
        if is_prompt:
            return NO_TOKEN
        if self._script:
            return self._script.pop(0)
        return self.eos

    def is_sentence_end(self, token: int) -> bool:
        return token == self.eos

    def detokenize(self, tokens: Sequence[int]) -> str:
        return "".join(chr(t) for t in tokens if t != self.eos)


class _RecordingBuffer:
    def __init__(self, log: list[int]) -> None:
        self._value = 0
        self._log = log

    def __getitem__(self, index: int) -> int:
        assert index == 0
        return self._value

    def __setitem__(self, index: int, value: int) -> None:
        assert index == 0
        self._value = value
        self._log.append(value)


@pytest.fixture
def failing_engine() -> FakeEngine:
    return FakeEngine(init_status=InitStatus.failure(EngineErrorCode.DEVICE_UNAVAILABLE, "no gpu"))
