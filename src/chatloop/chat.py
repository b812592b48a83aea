"""Multi-turn chat session over an inference engine."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable

import structlog

from .engines.base import DeviceSpec, InferenceEngine
from .errors import EngineInitError
from .filters import scrub
from .generation import DEFAULT_STEP_LIMIT, GenerationResult, generate
from .metrics.instrumentation import Instrumentation, TurnMetrics, tokens_per_second
from .prompts import fill_template, render
from .session import ConversationHistory, clear, commit


logger = structlog.get_logger(__name__)


@dataclass
class TurnResult:
    text: str
    raw_text: str
    steps_taken: int
    metrics: TurnMetrics


def start_engine(engine: InferenceEngine, device: DeviceSpec) -> None:
    """Initialise ``engine`` on ``device``; a failed init is fatal."""
    status = engine.init(device)
    if not status.ok:
        logger.error("engine_init_failed", code=status.code.name, message=status.message, device=device.kind)
        raise EngineInitError(status.code, status.message)
    logger.info("engine_ready", device=device.kind, gpu_index=device.gpu_index)


class ChatSession:
    def __init__(
        self,
        engine: InferenceEngine,
        history: ConversationHistory | None = None,
        step_limit: int = DEFAULT_STEP_LIMIT,
        sentinel_token_ids: Iterable[int] = (),
        instrumentation: Instrumentation | None = None,
    ) -> None:
        self.engine = engine
        self.history = history if history is not None else ConversationHistory()
        self.step_limit = step_limit
        self.sentinel_token_ids = tuple(sentinel_token_ids)
        self._instrumentation = instrumentation

    def respond(self, user_input: str, step_limit: int | None = None) -> TurnResult:
        prompt = render(self.history, user_input)
        result = self._run(prompt, step_limit)
        commit(self.history, user_input, result.text)
        return result

    def one_shot(self, content: str, step_limit: int | None = None) -> TurnResult:
        return self._run(fill_template(content), step_limit)

    def clear(self) -> None:
        clear(self.history)

    def _run(self, prompt: str, step_limit: int | None) -> TurnResult:
        limit = self.step_limit if step_limit is None else step_limit

        def _generate() -> GenerationResult:
            return generate(self.engine, prompt, limit, self.sentinel_token_ids)

        if self._instrumentation is not None:
            measured = self._instrumentation.measure(_generate)
            generated = measured.output
            produced = self._content_token_count(generated)
            metrics = TurnMetrics(
                elapsed_s=measured.elapsed_s,
                steps=generated.steps_taken,
                generated_tokens=produced,
                tokens_per_s=tokens_per_second(produced, measured.elapsed_s),
                ram_peak_mb=measured.ram_peak_mb,
                vram_peak_mb=measured.vram_peak_mb,
            )
        else:
            start = time.perf_counter()
            generated = _generate()
            elapsed = time.perf_counter() - start
            produced = self._content_token_count(generated)
            metrics = TurnMetrics(
                elapsed_s=elapsed,
                steps=generated.steps_taken,
                generated_tokens=produced,
                tokens_per_s=tokens_per_second(produced, elapsed),
            )

        raw_text = self.engine.detokenize(generated.output_tokens)
        text = scrub(raw_text)
        logger.info(
            "turn_finished",
            steps=generated.steps_taken,
            output_tokens=len(generated.output_tokens),
            elapsed_s=round(metrics.elapsed_s, 3),
            history_turns=len(self.history),
        )
        return TurnResult(text=text, raw_text=raw_text, steps_taken=generated.steps_taken, metrics=metrics)

    def _content_token_count(self, generated: GenerationResult) -> int:
        tokens = generated.output_tokens
        if tokens and self.engine.is_sentence_end(tokens[-1]):
            return len(tokens) - 1
        return len(tokens)
