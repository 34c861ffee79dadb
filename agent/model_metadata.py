"""Token estimation utilities.

Pure functions used by the context compressor and the agent loop for
budget checks before anything touches the tokenizer. Estimates are
deterministic and monotonic in input length.
"""

from typing import Iterable

from inference.types import ConversationTurn

CHARS_PER_TOKEN = 4
# Role tags and separators added by chat templates.
TURN_OVERHEAD_TOKENS = 4


def estimate_tokens_rough(text: str) -> int:
    """Rough token estimate (~4 chars/token) for pre-flight checks."""
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN


def estimate_turn_tokens(turn: ConversationTurn) -> int:
    return estimate_tokens_rough(turn.content) + TURN_OVERHEAD_TOKENS


def estimate_turns_tokens_rough(turns: Iterable[ConversationTurn]) -> int:
    return sum(estimate_turn_tokens(t) for t in turns)
