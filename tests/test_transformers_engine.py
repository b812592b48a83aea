from __future__ import annotations

import pytest
import torch
from transformers import LlamaConfig, LlamaForCausalLM

from chatloop.engines import transformers_engine
from chatloop.engines.base import NO_TOKEN, DeviceSpec
from chatloop.engines.transformers_engine import TransformersEngine
from chatloop.generation import generate


EOS = 2


class _SpaceTokenizer:
    """Token ids written as space-separated integers."""

    eos_token_id = EOS

    def encode(self, text: str, add_special_tokens: bool = False) -> list[int]:
        return [int(part) for part in text.split()]

    def decode(self, tokens: list[int], skip_special_tokens: bool = False) -> str:
        return " ".join(str(token) for token in tokens)


@pytest.fixture
def tiny_model() -> LlamaForCausalLM:
    torch.manual_seed(0)
    config = LlamaConfig(
        vocab_size=64,
        hidden_size=32,
        intermediate_size=64,
        num_hidden_layers=2,
        num_attention_heads=4,
        num_key_value_heads=2,
        max_position_embeddings=128,
        bos_token_id=1,
        eos_token_id=EOS,
        pad_token_id=0,
    )
    return LlamaForCausalLM(config).eval()


@pytest.fixture
def engine(monkeypatch, tiny_model) -> TransformersEngine:
    class _Models:
        @staticmethod
        def from_pretrained(path: str, **kwargs):
            return tiny_model

    class _Tokenizers:
        @staticmethod
        def from_pretrained(path: str, **kwargs):
            return _SpaceTokenizer()

    monkeypatch.setattr(transformers_engine, "AutoModelForCausalLM", _Models)
    monkeypatch.setattr(transformers_engine, "AutoTokenizer", _Tokenizers)
    engine = TransformersEngine(model_path="tiny-llama")
    status = engine.init(DeviceSpec(kind="cpu", gpu_index=None))
    assert status.ok
    return engine


def _greedy_reference(model: LlamaForCausalLM, prompt: list[int], new_tokens: int) -> list[int]:
    input_ids = torch.tensor([prompt], dtype=torch.long)
    with torch.no_grad():
        output = model.generate(
            input_ids=input_ids,
            attention_mask=torch.ones_like(input_ids),
            max_new_tokens=new_tokens,
            do_sample=False,
        )
    return output[0, len(prompt):].tolist()


def test_generation_matches_greedy_generate_across_turns(engine, tiny_model):
    new_tokens = 8
    turns = [[5, 9, 12, 40, 33], [7, 8], [5, 9, 12, 40, 33, 21, 17, 60, 3]]

    for prompt in turns:
        text = " ".join(str(token) for token in prompt)
        result = generate(engine, text, step_limit=len(prompt) - 1 + new_tokens)

        assert result.output_tokens == _greedy_reference(tiny_model, prompt, new_tokens)


def test_prompt_steps_return_placeholder(engine):
    embedding = engine.embed([5, 9, 12])
    pos = engine.positional_buffer()
    pos[0] = 0

    assert engine.predict_step(engine.fill_input(pos, embedding, True), pos, True) == NO_TOKEN


def test_fill_input_picks_position_row_in_prompt_and_first_row_in_decode(engine):
    embedding = engine.embed([5, 9, 12])
    pos = engine.positional_buffer()
    pos[0] = 2

    assert torch.equal(engine.fill_input(pos, embedding, True), embedding[2:3])
    assert torch.equal(engine.fill_input(pos, embedding, False), embedding[0:1])


def test_rewinding_position_crops_cache(engine):
    tokens = [5, 9, 12, 40]
    pos = engine.positional_buffer()
    predictions = []
    for position, token in enumerate(tokens):
        pos[0] = position
        step_input = engine.fill_input(pos, engine.embed([token]), False)
        predictions.append(engine.predict_step(step_input, pos, False))

    pos[0] = 2
    again = engine.predict_step(engine.fill_input(pos, engine.embed([tokens[2]]), False), pos, False)

    assert again == predictions[2]


def test_sentence_end_and_detokenize(engine):
    assert engine.is_sentence_end(EOS)
    assert not engine.is_sentence_end(NO_TOKEN)
    assert engine.detokenize([4, 5]) == "4 5"
