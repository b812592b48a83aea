from __future__ import annotations

import gradio as gr

from chatloop.chat import ChatSession
from chatloop.config import RootConfig
from chatloop.session import Turn
from chatloop.ui.app import build_app, handle_chat, handle_clear, metrics_markdown

from conftest import SENTINELS, FakeEngine


def _session(**engine_kwargs) -> ChatSession:
    return ChatSession(FakeEngine(**engine_kwargs), step_limit=500, sentinel_token_ids=SENTINELS)


def test_chat_appends_exchange_and_metrics():
    session = _session(replies=["<think>plan</think>Hi!"])

    transcript, metrics, cleared = handle_chat(session, "hello", [], 500)

    assert transcript == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Hi!"},
    ]
    assert "**generated_tokens:** " in metrics
    assert cleared == ""
    assert session.history.turns() == [Turn("hello", "Hi!")]


def test_empty_message_is_ignored():
    session = _session(replies=["unused"])
    previous = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]

    transcript, metrics, _ = handle_chat(session, "", previous, 500)

    assert transcript == previous
    assert metrics == metrics_markdown(None)
    assert session.engine.prompts == []


def test_failed_turn_is_reported_not_committed():
    session = _session(prompt_tokens=[])

    transcript, metrics, _ = handle_chat(session, "hello", None, 500)

    assert transcript[-1]["content"].startswith("[error] ")
    assert metrics.startswith("**error:** ")
    assert len(session.history) == 0


def test_clear_resets_transcript_and_history():
    session = _session(replies=["ok"])
    handle_chat(session, "one", [], 500)

    transcript, metrics, _ = handle_clear(session)

    assert transcript == []
    assert metrics == metrics_markdown(None)
    assert len(session.history) == 0


def test_build_app_returns_blocks():
    assert isinstance(build_app(RootConfig(), _session()), gr.Blocks)
