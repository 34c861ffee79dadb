"""Fit a conversation into a fixed token budget.

Recency-biased truncation, no summarization: the first turn (the system
prompt) always survives, then turns are taken from the newest backwards
while the running estimate stays within budget. Everything older than the
first turn that does not fit is dropped, and chronological order is kept.
"""

import logging
from typing import List, Sequence

from agent.model_metadata import estimate_turn_tokens
from inference.types import ConversationTurn

logger = logging.getLogger(__name__)


class ContextCompressor:
    def compress(self, turns: Sequence[ConversationTurn], token_budget: int) -> List[ConversationTurn]:
        """Return the subsequence of ``turns`` that fits ``token_budget``.

        The newest turn is always retained along with the first one, even if
        the pair alone exceeds the budget; the engine truncates from there.
        """
        turns = list(turns)
        if len(turns) <= 2:
            return turns

        costs = [estimate_turn_tokens(t) for t in turns]
        if sum(costs) <= token_budget:
            return turns

        used = costs[0] + costs[-1]
        start = len(turns) - 1
        for i in range(len(turns) - 2, 0, -1):
            if used + costs[i] > token_budget:
                break
            used += costs[i]
            start = i

        kept = [turns[0]] + turns[start:]
        logger.info(
            "Compressed context: %d -> %d turns (~%d tokens, budget %d)",
            len(turns), len(kept), used, token_budget,
        )
        return kept


def compress(turns: Sequence[ConversationTurn], token_budget: int) -> List[ConversationTurn]:
    return ContextCompressor().compress(turns, token_budget)
