"""Prompt-then-decode generation loop."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable

import structlog

from .engines.base import InferenceEngine
from .errors import EmptyPromptError


logger = structlog.get_logger(__name__)

DEFAULT_STEP_LIMIT = 2560


class Phase(enum.Enum):
    PROMPT = "prompt"
    DECODE = "decode"


@dataclass
class GenerationState:
    prompt_tokens: list[int]
    position: int = 0
    phase: Phase = Phase.PROMPT
    candidate: int = 0
    output_tokens: list[int] = field(default_factory=list)

    @property
    def prompt_length(self) -> int:
        return len(self.prompt_tokens)

    def in_prompt_span(self) -> bool:
        return self.position < self.prompt_length - 1

    def enter_decode(self) -> None:
        if self.phase is Phase.PROMPT:
            self.phase = Phase.DECODE
            logger.debug("phase_decode", position=self.position, prompt_length=self.prompt_length)


@dataclass
class GenerationResult:
    output_tokens: list[int]
    steps_taken: int


def generate(
    engine: InferenceEngine,
    prompt: str,
    step_limit: int = DEFAULT_STEP_LIMIT,
    sentinel_token_ids: Iterable[int] = (),
) -> GenerationResult:
    """Run the model over ``prompt`` and decode until a terminator or ``step_limit``.

    Positions inside the prompt span are teacher-forced: the engine is run to
    build its state, but the following step is driven by the next literal
    prompt token. From position ``prompt_length - 1`` on, each step embeds
    the previous candidate and keeps the model's prediction. Sentinel ids are
    never added to the output; a sentence-terminating token stops the loop
    before the position advances.
    """
    tokens = engine.tokenize(prompt)
    if not tokens:
        raise EmptyPromptError(prompt)

    sentinels = frozenset(sentinel_token_ids)
    state = GenerationState(prompt_tokens=list(tokens), candidate=tokens[0])
    prompt_embedding = engine.embed(state.prompt_tokens)
    pos_buffer = engine.positional_buffer()

    while state.position < step_limit:
        pos_buffer[0] = state.position
        if state.in_prompt_span():
            step_input = engine.fill_input(pos_buffer, prompt_embedding, True)
            state.candidate = engine.predict_step(step_input, pos_buffer, True)
        else:
            state.enter_decode()
            token_embedding = engine.embed([state.candidate])
            step_input = engine.fill_input(pos_buffer, token_embedding, False)
            state.candidate = engine.predict_step(step_input, pos_buffer, False)
            if state.candidate not in sentinels:
                state.output_tokens.append(state.candidate)

        if engine.is_sentence_end(state.candidate):
            break

        if state.phase is Phase.PROMPT:
            state.candidate = state.prompt_tokens[state.position + 1]
        state.position += 1

    steps = min(state.position, step_limit)
    logger.debug(
        "generation_finished",
        prompt_length=state.prompt_length,
        steps=steps,
        output_tokens=len(state.output_tokens),
    )
    return GenerationResult(output_tokens=state.output_tokens, steps_taken=steps)
