"""System prompt assembly.

Layers, joined with blank lines:

1. Identity
2. Current date/time
3. Memory block (recent memories, capped)
4. Behavioral instructions

The ``# Tools`` block is not part of this prompt; the agent loop appends it
to the system turn so its token cost can be budgeted separately.
"""

from datetime import datetime
from typing import Iterable, Optional

from agent.memory import MemoryEntry, MemoryProvider, build_memory_prompt_block

DEFAULT_AGENT_IDENTITY = (
    "You are Hearth, an AI assistant running entirely on the user's own device.\n"
    "All computation and data stays on-device unless the user's request is cleared for cloud processing.\n"
    "You help the user with reminders, media, messages, and general questions."
)

BEHAVIORAL_INSTRUCTIONS = """# Instructions
- Use tools when the user asks you to take an action (play music, send a message, set a reminder, save something to memory).
- Answer directly WITHOUT tools when the user asks a question you can answer from knowledge or conversation context.
- When you use a tool, wait for the result before responding to the user.
- If you learn something important about the user (preferences, habits, names), use save_memory to remember it.
- Be concise. One or two sentences is usually enough.
- Never fabricate tool results. If a tool fails, tell the user honestly."""


class PromptBuilder:
    """Assembles the system prompt from layered components.

    Args:
        memory: Optional memory provider; its most recent entries are
            rendered into the prompt when ``build`` is not given any.
        identity: Override for the identity layer.
    """

    def __init__(self, *, memory: Optional[MemoryProvider] = None, identity: Optional[str] = None):
        self._memory = memory
        self._identity = identity or DEFAULT_AGENT_IDENTITY

    def build(
        self,
        *,
        now: Optional[datetime] = None,
        memories: Optional[Iterable[MemoryEntry]] = None,
    ) -> str:
        now = now or datetime.now()
        prompt_parts = [
            self._identity,
            f"Current date and time: {now.strftime('%A, %B %d, %Y at %I:%M %p')}",
        ]

        if memories is None and self._memory is not None:
            memories = self._memory.recent()
        mem_block = build_memory_prompt_block(memories or [])
        if mem_block:
            prompt_parts.append(mem_block)

        prompt_parts.append(BEHAVIORAL_INSTRUCTIONS)
        return "\n\n".join(prompt_parts)
