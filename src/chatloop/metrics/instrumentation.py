"""Instrumentation wrapper for generation calls."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .sampler import GpuMemorySampler, rss_sampler


T = TypeVar("T")


@dataclass
class Measured(Generic[T]):
    output: T
    elapsed_s: float
    ram_peak_mb: float
    vram_peak_mb: float | None


@dataclass
class TurnMetrics:
    """Timing for one turn.

    ``generated_tokens`` counts decoded content tokens: sentinels and a
    trailing sentence terminator are not included, and ``tokens_per_s`` is
    derived from it.
    """

    elapsed_s: float
    steps: int
    generated_tokens: int
    tokens_per_s: float
    ram_peak_mb: float | None = None
    vram_peak_mb: float | None = None


class Instrumentation:
    def __init__(self, sampling_interval_ms: int, gpu_index: int | None) -> None:
        self._interval = sampling_interval_ms
        self._gpu_index = gpu_index

    def measure(self, fn: Callable[[], T]) -> Measured[T]:
        ram = rss_sampler(self._interval)
        vram = GpuMemorySampler(self._interval, self._gpu_index)
        ram.start()
        vram.start()
        start = time.perf_counter()
        try:
            output = fn()
        finally:
            elapsed = time.perf_counter() - start
            ram_peak = ram.stop()
            vram_peak = vram.stop()
        return Measured(output=output, elapsed_s=elapsed, ram_peak_mb=ram_peak, vram_peak_mb=vram_peak)


def tokens_per_second(steps: int, elapsed_s: float) -> float:
    if elapsed_s <= 0:
        return 0.0
    return steps / elapsed_s
