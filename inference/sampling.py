"""Token sampling over raw backend logits.

The chain mirrors llama.cpp's default sampler order: repetition penalty,
top-k, temperature, top-p, then a seeded draw. A temperature of zero or
below short-circuits to greedy argmax.
"""

from typing import Optional, Sequence

import numpy as np

from inference.config import SamplingParams


def apply_repeat_penalty(
    logits: np.ndarray,
    recent_tokens: Sequence[int],
    penalty: float,
) -> np.ndarray:
    """Penalize tokens that already appeared in ``recent_tokens``.

    Positive logits are divided by the penalty and negative ones multiplied,
    so a penalty > 1 always makes the token less likely.
    """
    if penalty == 1.0 or not recent_tokens:
        return logits
    out = logits.copy()
    ids = np.unique(np.asarray(recent_tokens, dtype=np.int64))
    ids = ids[(ids >= 0) & (ids < out.shape[0])]
    values = out[ids]
    out[ids] = np.where(values > 0, values / penalty, values * penalty)
    return out


def top_k_filter(logits: np.ndarray, k: int) -> np.ndarray:
    if k <= 0 or k >= logits.shape[0]:
        return logits
    kth = np.partition(logits, -k)[-k]
    return np.where(logits >= kth, logits, -np.inf)


def softmax(logits: np.ndarray) -> np.ndarray:
    finite = logits[np.isfinite(logits)]
    shifted = logits - (finite.max() if finite.size else 0.0)
    exp = np.exp(shifted)
    total = exp.sum()
    if total <= 0 or not np.isfinite(total):
        probs = np.zeros_like(logits)
        probs[int(np.argmax(logits))] = 1.0
        return probs
    return exp / total


def top_p_filter(probs: np.ndarray, p: float) -> np.ndarray:
    """Keep the smallest set of tokens whose cumulative probability >= p."""
    if p >= 1.0:
        return probs
    order = np.argsort(probs)[::-1]
    cumulative = np.cumsum(probs[order])
    cutoff = int(np.searchsorted(cumulative, p)) + 1
    keep = order[:max(cutoff, 1)]
    filtered = np.zeros_like(probs)
    filtered[keep] = probs[keep]
    return filtered / filtered.sum()


class Sampler:
    """Stateful sampler; one instance is built per generation call."""

    def __init__(self, params: SamplingParams, rng: Optional[np.random.Generator] = None):
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(params.seed)
        self._history: list = []

    def accept(self, token: int) -> None:
        self._history.append(token)
        overflow = len(self._history) - self.params.repeat_last_n
        if overflow > 0:
            del self._history[:overflow]

    def sample(self, logits) -> int:
        logits = np.asarray(logits, dtype=np.float64)
        logits = apply_repeat_penalty(logits, self._history, self.params.repeat_penalty)

        if self.params.temperature <= 0:
            return int(np.argmax(logits))

        logits = top_k_filter(logits, self.params.top_k)
        probs = softmax(logits / self.params.temperature)
        probs = top_p_filter(probs, self.params.top_p)
        return int(self.rng.choice(probs.shape[0], p=probs))
