"""Inference configuration values passed from settings into the engine."""

from dataclasses import dataclass
from typing import Optional

from hearth_constants import (
    CONTEXT_SHIFT_DISCARD_RATIO,
    CONTEXT_SHIFT_MARGIN,
    CONTEXT_WINDOW,
    DEFAULT_BATCH_SIZE,
    REPEAT_LAST_N,
)


@dataclass(frozen=True)
class InferenceConfig:
    """Load-time options for a local model."""

    context_size: int = CONTEXT_WINDOW
    batch_size: int = DEFAULT_BATCH_SIZE
    threads: int = 4
    gpu_layers: int = 0
    use_mmap: bool = True
    flash_attention: bool = True


@dataclass(frozen=True)
class SamplingParams:
    """Per-call sampling options."""

    temperature: float = 0.7
    top_p: float = 0.9
    top_k: int = 40
    repeat_penalty: float = 1.1
    repeat_last_n: int = REPEAT_LAST_N
    seed: Optional[int] = None


@dataclass(frozen=True)
class ContextShiftPolicy:
    """Sliding-window eviction tuning.

    ``margin`` tokens are always left free at the end of the window.
    ``discard_ratio`` is the share of the discardable region (everything
    after the protected prefix) evicted by a single shift.
    """

    margin: int = CONTEXT_SHIFT_MARGIN
    discard_ratio: float = CONTEXT_SHIFT_DISCARD_RATIO

    def __post_init__(self):
        if self.margin < 0:
            raise ValueError("context shift margin must be >= 0")
        if not 0.0 < self.discard_ratio <= 1.0:
            raise ValueError("discard_ratio must be in (0, 1]")
