"""Step-wise engine over a Hugging Face causal LM."""
from __future__ import annotations

from typing import Any, Iterable, Sequence

import structlog
import torch
from transformers import AutoModelForCausalLM, AutoTokenizer, DynamicCache

from .base import NO_TOKEN, DeviceSpec, EngineErrorCode, InitStatus


logger = structlog.get_logger(__name__)

_DTYPES = {
    "float32": torch.float32,
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
}


class TransformersEngine:
    """Runs one position per ``predict_step`` against a KV cache.

    The cache is reset when position 0 is run and cropped whenever the
    position moves backwards, so the cache length always equals the
    position being predicted.
    """

    def __init__(
        self,
        model_path: str,
        tokenizer_path: str | None = None,
        dtype: str = "float32",
        stop_token_ids: Iterable[int] = (),
    ) -> None:
        self._model_path = model_path
        self._tokenizer_path = tokenizer_path or model_path
        self._dtype = _DTYPES[dtype]
        self._stop_token_ids = frozenset(stop_token_ids)
        self._model: Any | None = None
        self._tokenizer: Any | None = None
        self._device: torch.device | None = None
        self._cache: DynamicCache | None = None
        self._pos = torch.zeros(1, dtype=torch.long)

    def init(self, device: DeviceSpec) -> InitStatus:
        if device.kind == "cuda":
            if not torch.cuda.is_available():
                return InitStatus.failure(EngineErrorCode.DEVICE_UNAVAILABLE, "CUDA requested but not available")
            index = device.gpu_index if device.gpu_index is not None else 0
            self._device = torch.device(f"cuda:{index}")
        else:
            self._device = torch.device("cpu")

        try:
            self._tokenizer = AutoTokenizer.from_pretrained(self._tokenizer_path)
        except (OSError, ValueError) as exc:
            return InitStatus.failure(EngineErrorCode.TOKENIZER_LOAD_FAILED, str(exc))

        try:
            model = AutoModelForCausalLM.from_pretrained(self._model_path, dtype=self._dtype)
        except (OSError, ValueError) as exc:
            return InitStatus.failure(EngineErrorCode.MODEL_LOAD_FAILED, str(exc))
        self._model = model.to(self._device).eval()
        self._cache = None
        logger.info("model_loaded", model_path=self._model_path, dtype=str(self._dtype), device=str(self._device))
        return InitStatus.success()

    def _require_loaded(self) -> None:
        if self._model is None or self._tokenizer is None or self._device is None:
            raise RuntimeError("Engine not loaded")

    def tokenize(self, text: str) -> list[int]:
        self._require_loaded()
        return list(self._tokenizer.encode(text, add_special_tokens=False))

    def embed(self, tokens: Sequence[int]) -> torch.Tensor:
        self._require_loaded()
        ids = torch.tensor(list(tokens), dtype=torch.long, device=self._device)
        with torch.no_grad():
            return self._model.get_input_embeddings()(ids)

    def positional_buffer(self) -> torch.Tensor:
        return self._pos

    def fill_input(self, pos_buffer: torch.Tensor, embedding: torch.Tensor, is_prompt: bool) -> torch.Tensor:
        index = int(pos_buffer[0]) if is_prompt else 0
        return embedding[index : index + 1]

    def predict_step(self, step_input: torch.Tensor, pos_buffer: torch.Tensor, is_prompt: bool) -> int:
        self._require_loaded()
        pos = int(pos_buffer[0])
        if pos == 0 or self._cache is None:
            self._cache = DynamicCache()
        elif self._cache.get_seq_length() > pos:
            self._cache.crop(pos)

        position_ids = torch.tensor([[pos]], dtype=torch.long, device=self._device)
        with torch.no_grad():
            out = self._model(
                inputs_embeds=step_input.unsqueeze(0),
                position_ids=position_ids,
                past_key_values=self._cache,
                use_cache=True,
            )
        self._cache = out.past_key_values
        if is_prompt:
            return NO_TOKEN
        return int(torch.argmax(out.logits[0, -1]).item())

    def is_sentence_end(self, token: int) -> bool:
        self._require_loaded()
        return token == self._tokenizer.eos_token_id or token in self._stop_token_ids

    def detokenize(self, tokens: Sequence[int]) -> str:
        self._require_loaded()
        return self._tokenizer.decode(list(tokens), skip_special_tokens=False)
