"""Configuration loading and dataclasses."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

from .errors import ConfigError


QWEN_IM_END = 151645
QWEN_IM_START = 151644

_DTYPES = ("float32", "float16", "bfloat16")
_DEVICES = ("cuda", "cpu")
_LOG_FORMATS = ("console", "json")


@dataclass
class AppConfig:
    title: str = "chatloop"
    host: str = "127.0.0.1"
    port: int = 7860
    log_level: str = "INFO"
    log_format: str = "console"
    sampling_interval_ms: int = 50
    device: str = "cuda"
    gpu_index: int | None = 0
    offline_mode: bool = True


@dataclass
class ModelConfig:
    model_path: str = ""
    tokenizer_path: str | None = None
    dtype: str = "float32"
    stop_token_ids: list[int] = field(default_factory=list)

    def resolved_tokenizer_path(self) -> str:
        return self.tokenizer_path or self.model_path


@dataclass
class GenerationConfig:
    step_limit: int = 2560
    sentinel_token_ids: list[int] = field(default_factory=lambda: [QWEN_IM_END, QWEN_IM_START])


@dataclass
class SessionConfig:
    history_capacity: int = 5


@dataclass
class RootConfig:
    app: AppConfig = field(default_factory=AppConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


def _get(data: dict[str, Any], key: str, default: Any) -> Any:
    return data.get(key, default) if isinstance(data, dict) else default


def _choice(value: Any, choices: tuple[str, ...], key: str) -> str:
    text = str(value)
    if text not in choices:
        raise ConfigError(f"{key} must be one of {', '.join(choices)}, got {text!r}")
    return text


def _int_list(value: Any, key: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list of token ids")
    try:
        return [int(item) for item in value]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must contain integers: {exc}") from exc


def _positive(value: Any, key: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer: {exc}") from exc
    if number < 1:
        raise ConfigError(f"{key} must be >= 1, got {number}")
    return number


def parse_config(raw: dict[str, Any]) -> RootConfig:
    app_raw = _get(raw, "app", {})
    model_raw = _get(raw, "model", {})
    gen_raw = _get(raw, "generation", {})
    session_raw = _get(raw, "session", {})

    app = AppConfig(
        title=_get(app_raw, "title", AppConfig.title),
        host=_get(app_raw, "host", AppConfig.host),
        port=int(_get(app_raw, "port", AppConfig.port)),
        log_level=str(_get(app_raw, "log_level", AppConfig.log_level)).upper(),
        log_format=_choice(_get(app_raw, "log_format", AppConfig.log_format), _LOG_FORMATS, "app.log_format"),
        sampling_interval_ms=_positive(
            _get(app_raw, "sampling_interval_ms", AppConfig.sampling_interval_ms), "app.sampling_interval_ms"
        ),
        device=_choice(_get(app_raw, "device", AppConfig.device), _DEVICES, "app.device"),
        gpu_index=_get(app_raw, "gpu_index", AppConfig.gpu_index),
        offline_mode=bool(_get(app_raw, "offline_mode", AppConfig.offline_mode)),
    )

    model = ModelConfig(
        model_path=str(_get(model_raw, "model_path", ModelConfig.model_path)),
        tokenizer_path=_get(model_raw, "tokenizer_path", None),
        dtype=_choice(_get(model_raw, "dtype", ModelConfig.dtype), _DTYPES, "model.dtype"),
        stop_token_ids=_int_list(_get(model_raw, "stop_token_ids", []), "model.stop_token_ids"),
    )

    generation = GenerationConfig(
        step_limit=_positive(_get(gen_raw, "step_limit", GenerationConfig.step_limit), "generation.step_limit"),
        sentinel_token_ids=_int_list(
            _get(gen_raw, "sentinel_token_ids", GenerationConfig().sentinel_token_ids),
            "generation.sentinel_token_ids",
        ),
    )

    session = SessionConfig(
        history_capacity=_positive(
            _get(session_raw, "history_capacity", SessionConfig.history_capacity), "session.history_capacity"
        ),
    )

    return RootConfig(app=app, model=model, generation=generation, session=session)


def load_config(path: str) -> RootConfig:
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return parse_config(raw)
