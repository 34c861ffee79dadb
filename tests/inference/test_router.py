"""Tests for inference.router -- tier-based routing with local fallback."""

import json

import httpx
import pytest

from agent.agent_loop import AgentLoop
from inference.cloud import CloudInferenceClient, CloudProvider
from inference.engine import InferenceEngine
from inference.router import HybridRouter
from privacy.classifier import PrivacyTier
from tools.registry import ToolRegistry
from tests.fakes import fake_backend

MODEL = "models/qwen2.5-1.5b-instruct-q4_k_m.gguf"
LOCAL_NAME = "qwen2.5-1.5b-instruct-q4_k_m (local)"


class CloudStub:
    """Anthropic endpoint double that records request bodies."""

    def __init__(self, reply="Paris is the capital of France.", status=200):
        self.reply = reply
        self.status = status
        self.requests = []

    def __call__(self, request):
        self.requests.append(json.loads(request.content))
        if self.status >= 400:
            return httpx.Response(self.status, json={"error": {"message": "overloaded"}})
        return httpx.Response(200, json={"content": [{"type": "text", "text": self.reply}]})


async def _make_router(stub=None, cloud_enabled=True, api_key="sk-test", local_reply="Local answer."):
    engine = InferenceEngine(backend_factory=fake_backend.factory([local_reply]))
    await engine.load_model(MODEL)
    cloud = None
    if stub is not None:
        cloud = CloudInferenceClient(
            CloudProvider.ANTHROPIC,
            api_key=api_key,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)),
        )
    router = HybridRouter(AgentLoop(engine, ToolRegistry()), cloud=cloud, cloud_enabled=cloud_enabled)
    return router, engine


class TestHybridRouter:
    @pytest.mark.asyncio
    async def test_cloud_disabled_by_default(self):
        stub = CloudStub()
        router, engine = await _make_router(stub, cloud_enabled=False)
        result = await router.process("what is the capital of France")

        assert result.text == "Local answer."
        assert result.tier is PrivacyTier.ANONYMIZED
        assert result.model == LOCAL_NAME
        assert result.loop_result is not None
        assert stub.requests == []
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_anonymized_goes_to_cloud(self):
        stub = CloudStub()
        router, engine = await _make_router(stub)
        result = await router.process("what is the capital of France", system_prompt="Be brief.")

        assert result.text == "Paris is the capital of France."
        assert result.tier is PrivacyTier.ANONYMIZED
        assert result.model.endswith("(cloud)")
        assert result.fell_back is False
        assert result.was_redacted is False
        assert stub.requests[0]["messages"][0]["content"] == "what is the capital of France"
        assert stub.requests[0]["system"] == "Be brief."
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_cloud_tier_goes_to_cloud(self):
        stub = CloudStub(reply="Flights from $99.")
        router, engine = await _make_router(stub)
        result = await router.process("search the web for cheap flights")

        assert result.tier is PrivacyTier.CLOUD
        assert result.text == "Flights from $99."
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_local_tier_never_reaches_cloud(self):
        stub = CloudStub()
        router, engine = await _make_router(stub)
        result = await router.process("remind me to call John at 555-123-4567")

        assert result.tier is PrivacyTier.LOCAL
        assert result.model == LOCAL_NAME
        assert stub.requests == []
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_cloud_error_falls_back_to_local(self):
        stub = CloudStub(status=529)
        router, engine = await _make_router(stub)
        result = await router.process("explain quantum entanglement")

        assert result.fell_back is True
        assert result.text == "Local answer."
        assert result.model == LOCAL_NAME
        assert len(stub.requests) == 1
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_failed_audit_falls_back_to_local(self):
        stub = CloudStub(reply="Call them at 555-123-4567.")
        router, engine = await _make_router(stub)
        result = await router.process("explain quantum entanglement")

        assert result.fell_back is True
        assert result.audit_passed is False
        assert "555" not in result.text
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_missing_key_means_cloud_unavailable(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        stub = CloudStub()
        router, engine = await _make_router(stub, api_key=None)

        assert router.cloud_available is False
        result = await router.process("what is the capital of France")
        assert result.model == LOCAL_NAME
        assert stub.requests == []
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_preview_tier(self):
        router, engine = await _make_router()
        assert router.preview_tier("read my messages") is PrivacyTier.LOCAL
        assert router.cloud_available is False
        engine.shutdown()
