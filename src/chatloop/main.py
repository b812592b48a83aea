"""chatloop entrypoint."""
from __future__ import annotations

import argparse
import os
import sys

import structlog

from .chat import ChatSession, start_engine
from .config import RootConfig, load_config
from .console import run_console
from .engines.base import DeviceSpec
from .engines.transformers_engine import TransformersEngine
from .errors import ChatLoopError, ConfigError
from .logging_setup import setup_logging
from .metrics.instrumentation import Instrumentation
from .session import ConversationHistory
from .ui.app import build_app


logger = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Multi-turn chat over a local causal LM")
    parser.add_argument("--config", default="configs/chatloop.yaml")
    parser.add_argument("--model-path")
    parser.add_argument("--tokenizer-path")
    parser.add_argument("--device", choices=["cuda", "cpu"])
    parser.add_argument("--gpu-index", type=int)
    parser.add_argument("--step-limit", type=int)
    parser.add_argument("--history-capacity", type=int)
    parser.add_argument("--log-level")
    parser.add_argument("--offline", action="store_true")
    parser.add_argument("--ui", action="store_true", help="serve the gradio chat UI instead of the console")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--share", action="store_true")
    return parser.parse_args(argv)


def load_root_config(path: str) -> RootConfig:
    if not os.path.exists(path):
        return RootConfig()
    return load_config(path)


def apply_overrides(cfg: RootConfig, args: argparse.Namespace) -> RootConfig:
    if args.model_path:
        cfg.model.model_path = args.model_path
    if args.tokenizer_path:
        cfg.model.tokenizer_path = args.tokenizer_path
    if args.device:
        cfg.app.device = args.device
    if args.gpu_index is not None:
        cfg.app.gpu_index = args.gpu_index
    if args.step_limit is not None:
        cfg.generation.step_limit = args.step_limit
    if args.history_capacity is not None:
        cfg.session.history_capacity = args.history_capacity
    if args.log_level:
        cfg.app.log_level = args.log_level.upper()
    if args.offline:
        cfg.app.offline_mode = True
    if args.host:
        cfg.app.host = args.host
    if args.port is not None:
        cfg.app.port = args.port
    if cfg.generation.step_limit < 1 or cfg.session.history_capacity < 1:
        raise ConfigError("--step-limit and --history-capacity must be >= 1")
    return cfg


def ensure_offline(cfg: RootConfig) -> None:
    if cfg.app.offline_mode:
        os.environ.setdefault("HF_HUB_OFFLINE", "1")
        os.environ.setdefault("TRANSFORMERS_OFFLINE", "1")


def build_device(cfg: RootConfig) -> DeviceSpec:
    if cfg.app.device == "cuda":
        return DeviceSpec(kind="cuda", gpu_index=cfg.app.gpu_index)
    return DeviceSpec(kind="cpu", gpu_index=None)


def build_session(cfg: RootConfig) -> ChatSession:
    if not cfg.model.model_path:
        raise ChatLoopError("No model path configured (set model.model_path or pass --model-path)")
    engine = TransformersEngine(
        model_path=cfg.model.model_path,
        tokenizer_path=cfg.model.resolved_tokenizer_path(),
        dtype=cfg.model.dtype,
        stop_token_ids=cfg.model.stop_token_ids,
    )
    start_engine(engine, build_device(cfg))
    return ChatSession(
        engine,
        history=ConversationHistory(cfg.session.history_capacity),
        step_limit=cfg.generation.step_limit,
        sentinel_token_ids=cfg.generation.sentinel_token_ids,
        instrumentation=Instrumentation(cfg.app.sampling_interval_ms, cfg.app.gpu_index),
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = apply_overrides(load_root_config(args.config), args)
    except ChatLoopError as exc:
        print(f"chatloop: {exc}", file=sys.stderr)
        return 1
    setup_logging(cfg.app.log_level, cfg.app.log_format)
    ensure_offline(cfg)

    try:
        session = build_session(cfg)
        if args.ui:
            app = build_app(cfg, session)
            app.queue(default_concurrency_limit=1)
            app.launch(server_name=cfg.app.host, server_port=cfg.app.port, share=args.share)
        else:
            run_console(session)
    except ChatLoopError as exc:
        logger.error("fatal", error=str(exc), error_type=type(exc).__name__)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
