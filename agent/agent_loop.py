"""
AgentLoop -- bounded multi-turn reasoning with Hermes-style tool calls.

Each request runs the same linear state machine:

    messages = [system (+ tools block), ...history without system turns, user]
    for turn in range(MAX_TURNS):
        compress messages to the context budget
        render with the model's chat template and generate
        no <tool_call> in the output  -> completed
        else append the raw output, dispatch each call in order,
             append one tool turn per result, continue
    -> exhausted

A generation failure at any turn ends the loop with a fixed apology. Tool
failures are never raised; they come back as ToolResults and the model sees
them as tool turns.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from agent.context_compressor import ContextCompressor
from agent.prompt_builder import PromptBuilder
from hearth_constants import (
    CONTEXT_WINDOW,
    GENERATION_MAX_TOKENS,
    MAX_TURNS,
    RESPONSE_TEMPERATURE,
    TOOL_TEMPERATURE,
)
from inference.engine import InferenceEngine
from inference.errors import HearthInferenceError, ModelNotLoadedError
from inference.types import ConversationTurn, FinishReason, Role
from privacy.classifier import PrivacyClassifier, PrivacyTier
from tools.base import ToolResult
from tools.parser import format_tool_response, parse_tool_calls, strip_tool_calls
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ERROR_MSG = "I encountered an error while thinking. Please try again."
TIMEOUT_MSG = "I ran out of steps while working on your request. Here's what I found so far."


class LoopOutcome(str, Enum):
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AgentLoopResult:
    """Result of running the agent loop."""

    response: str
    turns_used: int
    tool_calls_made: int
    outcome: LoopOutcome = LoopOutcome.COMPLETED
    # Classification of the user input, for the caller's routing/audit.
    privacy_tier: Optional[PrivacyTier] = None
    tool_results: Tuple[ToolResult, ...] = field(default_factory=tuple)
    error: Optional[str] = None


class AgentLoop:
    MAX_TURNS = MAX_TURNS
    GENERATION_MAX_TOKENS = GENERATION_MAX_TOKENS
    CONTEXT_WINDOW = CONTEXT_WINDOW

    def __init__(
        self,
        engine: InferenceEngine,
        registry: ToolRegistry,
        *,
        prompt_builder: Optional[PromptBuilder] = None,
        compressor: Optional[ContextCompressor] = None,
        classifier: Optional[PrivacyClassifier] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.compressor = compressor or ContextCompressor()
        self.classifier = classifier or PrivacyClassifier()

    def _context_budget(self) -> int:
        window = self.CONTEXT_WINDOW
        handle = self.engine.handle
        if handle is not None:
            window = min(window, handle.context_size)
        return window - self.GENERATION_MAX_TOKENS

    def _initial_messages(
        self, user_input: str, history: Sequence[ConversationTurn], tools_block: str
    ) -> List[ConversationTurn]:
        system_prompt = self.prompt_builder.build()
        if tools_block:
            # Block starts with a newline: "...\n\n# Tools"
            system_prompt = f"{system_prompt}\n{tools_block}"
        messages = [ConversationTurn.system(system_prompt)]
        messages.extend(t for t in history if t.role is not Role.SYSTEM)
        messages.append(ConversationTurn.user(user_input))
        return messages

    async def run(
        self,
        user_input: str,
        history: Sequence[ConversationTurn] = (),
        cancel: Optional[threading.Event] = None,
    ) -> AgentLoopResult:
        """Run the loop for one user input.

        Setting ``cancel`` stops the current generation at the next token and
        ends the loop with outcome ``cancelled``. Cancelling the awaiting task
        also stops decoding.

        Raises:
            ModelNotLoadedError: before any work if no model is loaded.
        """
        if not self.engine.is_loaded:
            raise ModelNotLoadedError()

        request_id = uuid.uuid4().hex[:8]
        tier = self.classifier.classify(user_input)
        tools_block = self.registry.generate_tools_prompt_block()
        messages = self._initial_messages(user_input, history, tools_block)
        budget = self._context_budget()

        total_tool_calls = 0
        tool_results: List[ToolResult] = []
        last_response = ""

        logger.info("[%s] start: tier=%s, history=%d turns, tools=%s",
                    request_id, tier.value, len(history), "yes" if tools_block else "no")

        for turn in range(self.MAX_TURNS):
            working = self.compressor.compress(messages, budget)
            temperature = RESPONSE_TEMPERATURE if turn == 0 and not tools_block else TOOL_TEMPERATURE
            logger.debug("[%s] turn %d/%d: %d messages (%d after compression), temperature=%.2f",
                         request_id, turn, self.MAX_TURNS - 1, len(messages), len(working), temperature)

            try:
                gen = await self.engine.chat(
                    working,
                    max_tokens=self.GENERATION_MAX_TOKENS,
                    temperature=temperature,
                    cancel=cancel,
                )
                error = None if gen.ok else (gen.error or "generation failed")
            except HearthInferenceError as e:
                error = str(e)

            if error is not None:
                logger.error("[%s] turn %d: generation failed: %s", request_id, turn, error)
                return AgentLoopResult(
                    response=ERROR_MSG,
                    turns_used=turn + 1,
                    tool_calls_made=total_tool_calls,
                    outcome=LoopOutcome.FAILED,
                    privacy_tier=tier,
                    tool_results=tuple(tool_results),
                    error=error,
                )

            if gen.finish_reason is FinishReason.CANCELLED:
                logger.info("[%s] turn %d: cancelled", request_id, turn)
                return AgentLoopResult(
                    response=strip_tool_calls(gen.text),
                    turns_used=turn + 1,
                    tool_calls_made=total_tool_calls,
                    outcome=LoopOutcome.CANCELLED,
                    privacy_tier=tier,
                    tool_results=tuple(tool_results),
                )

            response = gen.text
            last_response = response
            calls = parse_tool_calls(response)

            if not calls:
                clean = strip_tool_calls(response)
                logger.info("[%s] turn %d: completed (%d chars, %d tool calls)",
                            request_id, turn, len(clean), total_tool_calls)
                return AgentLoopResult(
                    response=clean,
                    turns_used=turn + 1,
                    tool_calls_made=total_tool_calls,
                    outcome=LoopOutcome.COMPLETED,
                    privacy_tier=tier,
                    tool_results=tuple(tool_results),
                )

            messages.append(ConversationTurn.assistant(response))

            # Sequential on purpose: later calls may depend on earlier side effects.
            for call in calls:
                result = await self.registry.dispatch(call)
                total_tool_calls += 1
                tool_results.append(result)
                messages.append(ConversationTurn.tool(format_tool_response(result)))
                if result.success:
                    logger.info("[%s] turn %d: tool %s ok (%.100s)", request_id, turn, call.name, result.output)
                else:
                    logger.warning("[%s] turn %d: tool %s failed: %s", request_id, turn, call.name, result.error)

        logger.warning("[%s] exhausted %d turns", request_id, self.MAX_TURNS)
        clean = strip_tool_calls(last_response)
        return AgentLoopResult(
            response=f"{TIMEOUT_MSG}\n\n{clean}" if clean else TIMEOUT_MSG,
            turns_used=self.MAX_TURNS,
            tool_calls_made=total_tool_calls,
            outcome=LoopOutcome.EXHAUSTED,
            privacy_tier=tier,
            tool_results=tuple(tool_results),
        )
