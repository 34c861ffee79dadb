"""
In-process stand-in for a llama.cpp model.

Byte-level vocabulary: every UTF-8 byte b is token ``b + 3``; 1 is BOS and
2 is EOS. Each generation (one ``clear_cache`` call) replays the next
scripted reply by returning one-hot logits for its bytes, then EOS.

The KV-cache is modelled as a plain list so tests can assert that the
engine's position bookkeeping matches what was actually committed.
"""

import time
from typing import List, Optional, Sequence

import numpy as np

from inference.config import InferenceConfig
from inference.errors import DecodeError

BOS = 1
EOS = 2
OFFSET = 3
VOCAB = 256 + OFFSET


class FakeBackend:
    def __init__(
        self,
        config: Optional[InferenceConfig] = None,
        scripts: Sequence[str] = (),
        n_ctx: Optional[int] = None,
        fail_on_decode: Optional[int] = None,
        decode_delay: float = 0.0,
    ):
        self.n_ctx = n_ctx or (config.context_size if config else 4096)
        self.scripts = list(scripts)
        self.fail_on_decode = fail_on_decode
        self.decode_delay = decode_delay
        self.cache: List[int] = []
        self.decode_calls = 0
        self.max_cache_len = 0
        self.generation = -1
        self.closed = False
        self._script: List[int] = []
        self._pos = 0

    def tokenize(self, text: str, add_bos: bool = True) -> List[int]:
        ids = [b + OFFSET for b in text.encode("utf-8")]
        return [BOS] + ids if add_bos else ids

    def token_to_piece(self, token: int) -> bytes:
        if token < OFFSET:
            return b""
        return bytes([token - OFFSET])

    def is_eog(self, token: int) -> bool:
        return token == EOS

    def decode(self, tokens: Sequence[int], start_pos: int) -> None:
        self.decode_calls += 1
        if self.decode_delay:
            time.sleep(self.decode_delay)
        if self.fail_on_decode is not None and self.decode_calls >= self.fail_on_decode:
            raise DecodeError("fake decode failure")
        if start_pos != len(self.cache):
            raise AssertionError(f"decode at {start_pos} but cache holds {len(self.cache)}")
        if len(self.cache) + len(tokens) > self.n_ctx:
            raise DecodeError("KV cache overflow")
        self.cache.extend(tokens)
        self.max_cache_len = max(self.max_cache_len, len(self.cache))

    def logits(self) -> np.ndarray:
        out = np.full(VOCAB, -1e9, dtype=np.float32)
        if self._pos < len(self._script):
            out[self._script[self._pos]] = 0.0
            self._pos += 1
        else:
            out[EOS] = 0.0
        return out

    def clear_cache(self) -> None:
        self.cache = []
        self.generation += 1
        reply = self.scripts[self.generation] if self.generation < len(self.scripts) else ""
        self._script = self.tokenize(reply, add_bos=False)
        self._pos = 0

    def remove_range(self, start: int, end: int) -> None:
        del self.cache[start:end]

    def shift_range(self, start: int, end: int, delta: int) -> None:
        # The list already closed the gap in remove_range.
        pass

    def close(self) -> None:
        self.closed = True


def factory(scripts: Sequence[str] = (), **kwargs):
    """Backend factory for ``InferenceEngine(backend_factory=...)``."""
    created: List[FakeBackend] = []

    def make(path: str, config: InferenceConfig) -> FakeBackend:
        backend = FakeBackend(config=config, scripts=scripts, **kwargs)
        created.append(backend)
        return backend

    make.created = created
    return make
