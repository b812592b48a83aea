"""gradio chat UI over a ChatSession."""
from __future__ import annotations

from typing import Any

import gradio as gr
import structlog

from ..chat import ChatSession
from ..config import RootConfig
from ..errors import ChatLoopError
from ..metrics.instrumentation import TurnMetrics


logger = structlog.get_logger(__name__)


def metrics_markdown(metrics: TurnMetrics | None, error: str | None = None) -> str:
    if error:
        return f"**error:** {error}"
    if metrics is None:
        return "No metrics yet."
    ram = metrics.ram_peak_mb
    vram = metrics.vram_peak_mb
    ram_str = f"{ram:.2f}" if isinstance(ram, (int, float)) else "n/a"
    vram_str = f"{vram:.2f}" if isinstance(vram, (int, float)) else "n/a"
    return (
        f"**tokens/s:** {metrics.tokens_per_s:.2f}\n"
        f"**generated_tokens:** {metrics.generated_tokens}\n"
        f"**steps:** {metrics.steps}\n"
        f"**elapsed_s:** {metrics.elapsed_s:.2f}\n"
        f"**ram_peak_mb:** {ram_str}\n"
        f"**vram_peak_mb:** {vram_str}"
    )


def handle_chat(
    session: ChatSession,
    message: str,
    transcript: list[Any] | None,
    step_limit: int,
) -> tuple[list[Any], str, str]:
    transcript = list(transcript or [])
    if not message:
        return transcript, metrics_markdown(None), ""
    transcript.append({"role": "user", "content": message})
    try:
        result = session.respond(message, step_limit=int(step_limit))
    except ChatLoopError as exc:
        logger.error("turn_failed", error=str(exc), error_type=type(exc).__name__)
        transcript.append({"role": "assistant", "content": f"[error] {exc}"})
        return transcript, metrics_markdown(None, error=str(exc)), ""
    transcript.append({"role": "assistant", "content": result.text})
    return transcript, metrics_markdown(result.metrics), ""


def handle_clear(session: ChatSession) -> tuple[list[Any], str, str]:
    session.clear()
    return [], metrics_markdown(None), ""


def build_app(cfg: RootConfig, session: ChatSession) -> gr.Blocks:
    with gr.Blocks(title=cfg.app.title) as demo:
        gr.Markdown(f"# {cfg.app.title}")

        step_limit = gr.Slider(
            minimum=1,
            maximum=max(8192, cfg.generation.step_limit),
            step=1,
            value=cfg.generation.step_limit,
            label="Step limit",
        )
        chatbot = gr.Chatbot(label="Chat")
        user_input = gr.Textbox(label="Message", placeholder="Type a message...")
        with gr.Row():
            send_btn = gr.Button("Send")
            clear_btn = gr.Button("Clear")
        metrics_md = gr.Markdown(metrics_markdown(None))

        def _on_chat(message: str, transcript: list[Any], step_limit_val: int):
            return handle_chat(session, message, transcript, step_limit_val)

        def _on_clear():
            return handle_clear(session)

        send_btn.click(
            _on_chat,
            inputs=[user_input, chatbot, step_limit],
            outputs=[chatbot, metrics_md, user_input],
        )
        user_input.submit(
            _on_chat,
            inputs=[user_input, chatbot, step_limit],
            outputs=[chatbot, metrics_md, user_input],
        )
        clear_btn.click(_on_clear, outputs=[chatbot, metrics_md, user_input])

    return demo
