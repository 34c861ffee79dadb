"""Cloud inference providers.

Only reached when the privacy router clears a request for cloud processing.
Every failure (missing key, HTTP error, malformed or empty body) surfaces as
``CloudInferenceError``; a cloud call never returns empty text silently.

Anthropic is called directly over httpx (Messages API, SSE streaming).
OpenAI-compatible endpoints go through the ``openai`` async client.
"""

import json
import logging
import os
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai

from hearth_constants import (
    ANTHROPIC_API_KEY_ENV,
    ANTHROPIC_API_URL,
    ANTHROPIC_API_VERSION,
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_OPENAI_MODEL,
    OPENAI_API_KEY_ENV,
)
from inference.errors import CloudInferenceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=15.0, write=30.0)
STREAM_MAX_TOKENS = 1024


class CloudProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class CloudInferenceClient:
    """Single-prompt completions against one cloud provider.

    Args:
        provider: Which API to call.
        model: Model name; defaults per provider.
        api_key: Explicit key. When omitted the provider's env var is read
            on every call, so a key added at runtime is picked up.
        base_url: Override for OpenAI-compatible endpoints.
        http_client: Injected ``httpx.AsyncClient`` (tests, proxies).
    """

    def __init__(
        self,
        provider: CloudProvider = CloudProvider.ANTHROPIC,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = CloudProvider(provider)
        self.model = model or (
            DEFAULT_ANTHROPIC_MODEL if self.provider is CloudProvider.ANTHROPIC else DEFAULT_OPENAI_MODEL
        )
        self.base_url = base_url
        self._api_key = api_key
        self._http_client = http_client

    @property
    def display_name(self) -> str:
        return f"{self.model} (cloud)"

    def is_configured(self) -> bool:
        return bool(self._resolve_key())

    def _resolve_key(self) -> Optional[str]:
        if self._api_key:
            return self._api_key
        env = ANTHROPIC_API_KEY_ENV if self.provider is CloudProvider.ANTHROPIC else OPENAI_API_KEY_ENV
        return os.getenv(env) or None

    def _require_key(self) -> str:
        key = self._resolve_key()
        if not key:
            raise CloudInferenceError(f"No API key configured for {self.provider.value}")
        return key

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.7,
    ) -> str:
        api_key = self._require_key()
        if self.provider is CloudProvider.ANTHROPIC:
            text = await self._anthropic_complete(api_key, prompt, system_prompt, max_tokens, temperature)
        else:
            text = await self._openai_complete(api_key, prompt, system_prompt, max_tokens, temperature)
        if not text:
            raise CloudInferenceError(f"{self.provider.value} returned empty response")
        return text

    async def stream(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = STREAM_MAX_TOKENS,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        api_key = self._require_key()
        if self.provider is CloudProvider.ANTHROPIC:
            chunks = self._anthropic_stream(api_key, prompt, system_prompt, max_tokens, temperature)
        else:
            chunks = self._openai_stream(api_key, prompt, system_prompt, max_tokens, temperature)
        emitted = False
        async for chunk in chunks:
            emitted = True
            yield chunk
        if not emitted:
            raise CloudInferenceError(f"{self.provider.value} stream produced no text")

    # =========================================================================
    # Anthropic Messages API
    # =========================================================================

    def _anthropic_request(
        self, api_key: str, prompt: str, system_prompt: Optional[str], max_tokens: int,
        temperature: float, stream: bool,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        if stream:
            body["stream"] = True
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }
        return {"url": self.base_url or ANTHROPIC_API_URL, "headers": headers, "json": body}

    def _client(self) -> httpx.AsyncClient:
        return self._http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def _anthropic_complete(
        self, api_key: str, prompt: str, system_prompt: Optional[str], max_tokens: int, temperature: float
    ) -> str:
        request = self._anthropic_request(api_key, prompt, system_prompt, max_tokens, temperature, stream=False)
        client = self._client()
        try:
            resp = await client.post(**request)
            data = resp.json()
        except httpx.HTTPError as e:
            raise CloudInferenceError(f"Anthropic request failed: {e}") from e
        except ValueError as e:
            raise CloudInferenceError(f"Failed to parse Anthropic response: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if not isinstance(data, dict):
            raise CloudInferenceError("Failed to parse Anthropic response: expected a JSON object")
        if data.get("error"):
            err = data["error"]
            message = err.get("message", "Unknown Anthropic API error") if isinstance(err, dict) else str(err)
            raise CloudInferenceError(f"Anthropic API error: {message}")
        if resp.status_code >= 400:
            raise CloudInferenceError(f"Anthropic API returned HTTP {resp.status_code}")
        blocks: List[Dict[str, Any]] = data.get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")

    async def _anthropic_stream(
        self, api_key: str, prompt: str, system_prompt: Optional[str], max_tokens: int, temperature: float
    ) -> AsyncIterator[str]:
        request = self._anthropic_request(api_key, prompt, system_prompt, max_tokens, temperature, stream=True)
        client = self._client()
        try:
            async with client.stream("POST", **request) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise CloudInferenceError(f"Anthropic API returned HTTP {resp.status_code}: {resp.text[:200]}")
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    try:
                        event = json.loads(line[5:].strip())
                    except json.JSONDecodeError:
                        logger.warning("Failed to parse Anthropic SSE chunk: %.200s", line)
                        continue
                    if event.get("type") == "error":
                        raise CloudInferenceError(f"Anthropic stream error: {event.get('error')}")
                    if event.get("type") == "content_block_delta":
                        text = (event.get("delta") or {}).get("text")
                        if text:
                            yield text
        except httpx.HTTPError as e:
            raise CloudInferenceError(f"Anthropic stream failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

    # =========================================================================
    # OpenAI Chat Completions API
    # =========================================================================

    def _openai_client(self, api_key: str) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=60.0,
            http_client=self._http_client,
        )

    @staticmethod
    def _openai_messages(prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _openai_complete(
        self, api_key: str, prompt: str, system_prompt: Optional[str], max_tokens: int, temperature: float
    ) -> str:
        client = self._openai_client(api_key)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=self._openai_messages(prompt, system_prompt),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            raise CloudInferenceError(f"OpenAI API error: {e}") from e
        finally:
            if self._http_client is None:
                await client.close()
        if not response.choices:
            raise CloudInferenceError("OpenAI returned no choices")
        return response.choices[0].message.content or ""

    async def _openai_stream(
        self, api_key: str, prompt: str, system_prompt: Optional[str], max_tokens: int, temperature: float
    ) -> AsyncIterator[str]:
        client = self._openai_client(api_key)
        try:
            stream = await client.chat.completions.create(
                model=self.model,
                messages=self._openai_messages(prompt, system_prompt),
                max_tokens=max_tokens,
                temperature=temperature,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise CloudInferenceError(f"OpenAI API error: {e}") from e
        finally:
            if self._http_client is None:
                await client.close()
