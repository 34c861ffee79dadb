"""Privacy-tier routing between the local agent loop and a cloud model.

Decision flow per request:

1. Classify the input (fresh every time; tiers are never reused).
2. LOCAL, or cloud disabled/unavailable  -> local agent loop.
3. ANONYMIZED -> redact PII, send to cloud, audit the response.
4. CLOUD      -> send as-is, audit the response.
5. Cloud error or failed audit -> local agent loop.

Cloud routing is off unless explicitly enabled.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, TYPE_CHECKING

from inference.cloud import CloudInferenceClient
from inference.errors import CloudInferenceError
from inference.types import ConversationTurn
from privacy.classifier import PrivacyClassifier, PrivacyTier

if TYPE_CHECKING:
    from agent.agent_loop import AgentLoop, AgentLoopResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedResult:
    """The answer plus how it was produced."""

    text: str
    tier: PrivacyTier
    was_redacted: bool
    model: str
    audit_passed: bool = True
    fell_back: bool = False
    loop_result: Optional["AgentLoopResult"] = None


class HybridRouter:
    def __init__(
        self,
        agent_loop: "AgentLoop",
        classifier: Optional[PrivacyClassifier] = None,
        cloud: Optional[CloudInferenceClient] = None,
        cloud_enabled: bool = False,
        cloud_max_tokens: int = 512,
    ):
        self.agent_loop = agent_loop
        self.classifier = classifier or PrivacyClassifier()
        self.cloud = cloud
        self.cloud_enabled = cloud_enabled
        self.cloud_max_tokens = cloud_max_tokens

    def preview_tier(self, text: str) -> PrivacyTier:
        return self.classifier.classify(text)

    @property
    def cloud_available(self) -> bool:
        return self.cloud_enabled and self.cloud is not None and self.cloud.is_configured()

    async def process(
        self,
        text: str,
        history: Sequence[ConversationTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> RoutedResult:
        tier = self.classifier.classify(text)
        if tier is PrivacyTier.LOCAL or not self.cloud_available:
            logger.debug("Routing %s request locally (cloud available=%s)", tier.value, self.cloud_available)
            return await self._local(text, history, tier)

        prompt = self.classifier.redact(text) if tier is PrivacyTier.ANONYMIZED else text
        was_redacted = prompt != text
        try:
            response = await self.cloud.complete(
                prompt, system_prompt=system_prompt, max_tokens=self.cloud_max_tokens
            )
        except CloudInferenceError as e:
            logger.warning("Cloud inference failed, falling back to local: %s", e)
            return await self._local(text, history, tier, fell_back=True)

        if not self.classifier.audit_response(response):
            logger.warning("Cloud response failed PII audit, falling back to local")
            return await self._local(text, history, tier, fell_back=True, audit_passed=False)

        return RoutedResult(
            text=response,
            tier=tier,
            was_redacted=was_redacted,
            model=self.cloud.display_name,
        )

    async def _local(
        self,
        text: str,
        history: Sequence[ConversationTurn],
        tier: PrivacyTier,
        fell_back: bool = False,
        audit_passed: bool = True,
    ) -> RoutedResult:
        result = await self.agent_loop.run(text, history)
        handle = self.agent_loop.engine.handle
        return RoutedResult(
            text=result.response,
            tier=tier,
            was_redacted=False,
            model=f"{handle.name if handle else 'none'} (local)",
            audit_passed=audit_passed,
            fell_back=fell_back,
            loop_result=result,
        )
