"""Native decode primitives.

``DecoderBackend`` is the narrow surface the engine needs from a causal LM:
tokenize, decode a batch at a position, read the last logits and edit the
KV-cache. ``ModelSession`` owns all position bookkeeping, so a backend never
decides on its own when to evict.

``LlamaCppBackend`` implements the protocol on top of llama-cpp-python.
"""

import logging
from typing import List, Optional, Protocol, Sequence

import numpy as np

from inference.config import InferenceConfig
from inference.errors import DecodeError, ModelLoadError

logger = logging.getLogger(__name__)

# Chat-template terminators that some GGUF files do not flag as EOG.
END_OF_TURN_MARKERS = ("<|im_end|>", "<|eot_id|>", "<|end|>", "<end_of_turn>", "<|endoftext|>")


class DecoderBackend(Protocol):
    n_ctx: int

    def tokenize(self, text: str, add_bos: bool = True) -> List[int]: ...

    def token_to_piece(self, token: int) -> bytes: ...

    def is_eog(self, token: int) -> bool: ...

    def decode(self, tokens: Sequence[int], start_pos: int) -> None: ...

    def logits(self) -> np.ndarray: ...

    def clear_cache(self) -> None: ...

    def remove_range(self, start: int, end: int) -> None: ...

    def shift_range(self, start: int, end: int, delta: int) -> None: ...

    def close(self) -> None: ...


class LlamaCppBackend:
    """llama.cpp backend holding one model and one KV-cache sequence."""

    SEQ_ID = 0

    def __init__(self, model_path: str, config: InferenceConfig):
        from llama_cpp import Llama

        try:
            self._llm = Llama(
                model_path=model_path,
                n_ctx=config.context_size,
                n_batch=config.batch_size,
                n_threads=config.threads,
                n_gpu_layers=config.gpu_layers,
                use_mmap=config.use_mmap,
                flash_attn=config.flash_attention,
                logits_all=False,
                verbose=False,
            )
        except (ValueError, RuntimeError) as e:
            raise ModelLoadError(f"Failed to load model {model_path}: {e}") from e

        self.n_ctx = self._llm.n_ctx()
        self._eog_ids = {self._llm.token_eos()}
        for marker in END_OF_TURN_MARKERS:
            ids = self._llm.tokenize(marker.encode("utf-8"), add_bos=False, special=True)
            if len(ids) == 1:
                self._eog_ids.add(ids[0])
        logger.debug("Loaded %s (n_ctx=%d, eog=%s)", model_path, self.n_ctx, sorted(self._eog_ids))

    def tokenize(self, text: str, add_bos: bool = True) -> List[int]:
        return self._llm.tokenize(text.encode("utf-8"), add_bos=add_bos, special=True)

    def token_to_piece(self, token: int) -> bytes:
        return self._llm.detokenize([token])

    def is_eog(self, token: int) -> bool:
        return token in self._eog_ids

    def decode(self, tokens: Sequence[int], start_pos: int) -> None:
        self._llm.n_tokens = start_pos
        try:
            self._llm.eval(list(tokens))
        except RuntimeError as e:
            raise DecodeError(f"llama_decode failed at pos {start_pos}: {e}") from e

    def logits(self) -> np.ndarray:
        if self._llm.n_tokens == 0:
            raise DecodeError("No logits available before the first decode")
        return np.asarray(self._llm.scores[self._llm.n_tokens - 1], dtype=np.float32)

    def clear_cache(self) -> None:
        self._llm.reset()
        self._llm._ctx.kv_cache_clear()

    def remove_range(self, start: int, end: int) -> None:
        self._llm._ctx.kv_cache_seq_rm(self.SEQ_ID, start, end)

    def shift_range(self, start: int, end: int, delta: int) -> None:
        self._llm._ctx.kv_cache_seq_shift(self.SEQ_ID, start, end, delta)
        ids = self._llm.input_ids
        ids[start + delta:end + delta] = ids[start:end].copy()
        self._llm.n_tokens = end + delta

    def close(self) -> None:
        llm: Optional[object] = self._llm
        self._llm = None
        if llm is not None and hasattr(llm, "close"):
            llm.close()
