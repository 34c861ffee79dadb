"""KV-cache position bookkeeping for a single loaded model.

A ``ModelSession`` tracks how many tokens are committed to the cache
(``n_past``) and where the protected prefix ends (``n_keep``). All decoding
goes through :meth:`ModelSession.decode`, which shifts the context window
before any batch that would land within ``margin`` tokens of ``n_ctx``.

Invariant: ``0 <= n_keep <= n_past <= n_ctx`` after every public call.
"""

import logging
import threading
from typing import Optional, Sequence

from inference.backend import DecoderBackend
from inference.config import ContextShiftPolicy
from inference.errors import ContextOverflowError

logger = logging.getLogger(__name__)


class ModelSession:
    def __init__(
        self,
        backend: DecoderBackend,
        n_ctx: int,
        n_batch: int,
        policy: Optional[ContextShiftPolicy] = None,
    ):
        if n_batch <= 0:
            raise ValueError("n_batch must be positive")
        self.backend = backend
        self.n_ctx = n_ctx
        self.n_batch = n_batch
        self.policy = policy or ContextShiftPolicy()
        self.n_past = 0
        self.n_keep = 0
        self.shift_count = 0

    @property
    def usable_ctx(self) -> int:
        return self.n_ctx - self.policy.margin

    def reset(self) -> None:
        """Clear the cache (not the weights) before a fresh generation."""
        self.backend.clear_cache()
        self.n_past = 0
        self.n_keep = 0

    def mark_keep(self) -> None:
        """Protect everything decoded so far from context shifts."""
        self.n_keep = self.n_past

    def context_shift(self) -> int:
        """Evict the oldest part of the discardable region.

        Returns the number of tokens discarded.
        """
        n_left = self.n_past - self.n_keep
        n_discard = int(n_left * self.policy.discard_ratio)
        if n_left > 0:
            n_discard = max(n_discard, 1)
        if n_discard <= 0:
            raise ContextOverflowError(
                f"Context window full: n_past={self.n_past}, n_keep={self.n_keep}, n_ctx={self.n_ctx}"
            )

        start = self.n_keep + n_discard
        self.backend.remove_range(self.n_keep, start)
        self.backend.shift_range(start, self.n_past, -n_discard)
        self.n_past -= n_discard
        self.shift_count += 1
        logger.info(
            "Context shift: discarded %d tokens (n_keep=%d, n_past=%d, n_ctx=%d)",
            n_discard, self.n_keep, self.n_past, self.n_ctx,
        )
        return n_discard

    def ensure_room(self, n_tokens: int) -> None:
        while self.n_past + n_tokens >= self.usable_ctx:
            self.context_shift()

    def decode(self, tokens: Sequence[int], cancel: Optional[threading.Event] = None) -> bool:
        """Commit ``tokens`` to the cache in batches of at most ``n_batch``.

        Cancellation is honoured between batches only, so ``n_past`` always
        counts fully committed batches. Returns False if cancelled.
        """
        tokens = list(tokens)
        for i in range(0, len(tokens), self.n_batch):
            if cancel is not None and cancel.is_set():
                return False
            batch = tokens[i:i + self.n_batch]
            self.ensure_room(len(batch))
            self.backend.decode(batch, self.n_past)
            self.n_past += len(batch)
        return True
