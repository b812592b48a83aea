"""Background peak samplers for process RAM and GPU memory."""
from __future__ import annotations

import threading
import time
from typing import Callable

import psutil
import pynvml  # provided by nvidia-ml-py
import structlog


logger = structlog.get_logger(__name__)

_MB = 1024 * 1024


class PeakSampler:
    """Polls ``probe`` on a daemon thread and keeps the largest value seen."""

    def __init__(self, interval_ms: int, probe: Callable[[], int]) -> None:
        self._interval = interval_ms / 1000.0
        self._probe = probe
        self._peak = 0
        self._running = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._peak = max(self._peak, self._probe())
        self._running.set()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> float:
        self._running.clear()
        if self._thread:
            self._thread.join(timeout=1.0)
        self._peak = max(self._peak, self._probe())
        return self._peak / _MB

    def _run(self) -> None:
        while self._running.is_set():
            value = self._probe()
            if value > self._peak:
                self._peak = value
            time.sleep(self._interval)


def rss_sampler(interval_ms: int) -> PeakSampler:
    proc = psutil.Process()
    return PeakSampler(interval_ms, lambda: proc.memory_info().rss)


class GpuMemorySampler:
    """NVML-backed sampler; reports ``None`` when NVML cannot be used."""

    def __init__(self, interval_ms: int, gpu_index: int | None) -> None:
        self._interval_ms = interval_ms
        self._gpu_index = gpu_index if gpu_index is not None else 0
        self._sampler: PeakSampler | None = None

    def start(self) -> None:
        self._sampler = None
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as exc:
            logger.debug("nvml_unavailable", error=str(exc))
            return
        try:
            handle = pynvml.nvmlDeviceGetHandleByIndex(self._gpu_index)
        except pynvml.NVMLError as exc:
            logger.debug("nvml_device_unavailable", gpu_index=self._gpu_index, error=str(exc))
            pynvml.nvmlShutdown()
            return
        self._sampler = PeakSampler(self._interval_ms, lambda: pynvml.nvmlDeviceGetMemoryInfo(handle).used)
        self._sampler.start()

    def stop(self) -> float | None:
        if self._sampler is None:
            return None
        peak = self._sampler.stop()
        self._sampler = None
        pynvml.nvmlShutdown()
        return peak
