"""Local inference engine.

``InferenceEngine`` owns at most one loaded model and its ``ModelSession``.
Every operation that touches native state runs on a dedicated single-worker
executor, so generations are serialized and load/unload never overlaps an
in-flight decode. The async methods are thin fronts that hop onto that
worker.

Usage::

    engine = InferenceEngine()
    await engine.load_model("models/qwen2.5-1.5b-instruct-q4_k_m.gguf")
    result = await engine.generate(prompt, max_tokens=256)

    stream = engine.stream(prompt)
    async for chunk in stream:
        print(chunk, end="")
    print(stream.result.finish_reason)
"""

import asyncio
import codecs
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from hearth_constants import DEFAULT_BATCH_SIZE, GENERATION_MAX_TOKENS
from inference.backend import DecoderBackend, LlamaCppBackend
from inference.config import ContextShiftPolicy, InferenceConfig, SamplingParams
from inference.errors import DecodeError, ModelNotLoadedError
from inference.prompt_format import (
    FAMILY_CONTEXT_LENGTHS,
    FAMILY_PROMPT_FORMATS,
    PromptFormat,
    detect_family,
    render,
    render_system_prefix,
)
from inference.sampling import Sampler
from inference.session import ModelSession
from inference.types import ConversationTurn, FinishReason, GenerationResult, ModelHandle

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str, InferenceConfig], DecoderBackend]

_END = object()


class GenerationStream:
    """Async iterator over text chunks produced by one generation.

    Chunks are always complete UTF-8 text. ``cancel()`` stops the decode
    loop at the next token boundary. ``result`` is set once iteration ends.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancel = threading.Event()
        self._future: Optional[asyncio.Future] = None
        self.result: Optional[GenerationResult] = None

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        self._cancel.set()

    def _attach(self, future: asyncio.Future) -> None:
        self._future = future
        future.add_done_callback(lambda _f: self._queue.put_nowait(_END))

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is _END:
            self.result = await self._future
            raise StopAsyncIteration
        return item

    async def collect(self) -> GenerationResult:
        """Drain the stream and return the final result."""
        async for _ in self:
            pass
        return self.result


class InferenceEngine:
    def __init__(
        self,
        backend_factory: Optional[BackendFactory] = None,
        shift_policy: Optional[ContextShiftPolicy] = None,
        sampling: Optional[SamplingParams] = None,
    ):
        self._backend_factory = backend_factory or LlamaCppBackend
        self._shift_policy = shift_policy or ContextShiftPolicy()
        self._sampling = sampling or SamplingParams()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hearth-engine")
        self._session: Optional[ModelSession] = None
        self._handle: Optional[ModelHandle] = None
        self._format = PromptFormat.CHATML

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    @property
    def prompt_format(self) -> PromptFormat:
        return self._format

    @property
    def session(self) -> Optional[ModelSession]:
        return self._session

    async def load_model(
        self,
        path: str,
        context_size: int = 4096,
        threads: int = 4,
        gpu_layers: int = 0,
        use_mmap: bool = True,
        flash_attention: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> ModelHandle:
        """Load a model, unloading any previous one first."""
        family = detect_family(path)
        config = InferenceConfig(
            context_size=min(context_size, FAMILY_CONTEXT_LENGTHS[family]),
            batch_size=batch_size,
            threads=threads,
            gpu_layers=gpu_layers,
            use_mmap=use_mmap,
            flash_attention=flash_attention,
        )
        return await self._run(self._load_sync, path, config)

    async def unload(self) -> None:
        await self._run(self._unload_sync)

    def shutdown(self) -> None:
        """Release the model and stop the worker thread."""
        self._executor.submit(self._unload_sync).result()
        self._executor.shutdown(wait=True)

    def _load_sync(self, path: str, config: InferenceConfig) -> ModelHandle:
        self._unload_sync()
        family = detect_family(path)
        backend = self._backend_factory(path, config)
        n_ctx = getattr(backend, "n_ctx", config.context_size) or config.context_size
        self._session = ModelSession(backend, n_ctx, config.batch_size, self._shift_policy)
        self._format = FAMILY_PROMPT_FORMATS[family]
        self._handle = ModelHandle(
            path=path,
            name=Path(path).stem,
            family=family.value,
            context_size=n_ctx,
            batch_size=config.batch_size,
        )
        logger.info("Model loaded: %s (family=%s, n_ctx=%d)", self._handle.name, family.value, n_ctx)
        return self._handle

    def _unload_sync(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        name = self._handle.name if self._handle else "?"
        self._handle = None
        session.backend.close()
        logger.info("Model unloaded: %s", name)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def tokenize(self, text: str, add_bos: bool = True) -> List[int]:
        self._require_loaded()
        return await self._run(self._tokenize_sync, text, add_bos)

    async def count_tokens(self, text: str) -> int:
        return len(await self.tokenize(text, add_bos=False))

    def _tokenize_sync(self, text: str, add_bos: bool) -> List[int]:
        return self._require_session().backend.tokenize(text, add_bos=add_bos)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        max_tokens: int = GENERATION_MAX_TOKENS,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
        repeat_penalty: Optional[float] = None,
        keep_prefix: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> GenerationResult:
        """Run one independent generation; the KV-cache is reset first."""
        self._require_loaded()
        self._check_max_tokens(max_tokens)
        params = self._params(temperature, top_p, top_k, repeat_penalty)
        cancel = cancel or threading.Event()
        try:
            return await self._run(self._generate_sync, prompt, max_tokens, params, keep_prefix, cancel, None)
        except asyncio.CancelledError:
            # The worker keeps running until it sees the event.
            cancel.set()
            raise

    def stream(
        self,
        prompt: str,
        max_tokens: int = GENERATION_MAX_TOKENS,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
        repeat_penalty: Optional[float] = None,
        keep_prefix: Optional[str] = None,
    ) -> GenerationStream:
        """Start a generation and return a stream of its text chunks.

        Must be called from a running event loop.
        """
        self._require_loaded()
        self._check_max_tokens(max_tokens)
        params = self._params(temperature, top_p, top_k, repeat_penalty)
        loop = asyncio.get_running_loop()
        stream = GenerationStream()

        def emit(text: str) -> None:
            loop.call_soon_threadsafe(stream._queue.put_nowait, text)

        future = loop.run_in_executor(
            self._executor,
            partial(self._generate_sync, prompt, max_tokens, params, keep_prefix, stream.cancel_event, emit),
        )
        stream._attach(future)
        return stream

    async def chat(self, turns: Sequence[ConversationTurn], **kwargs: Any) -> GenerationResult:
        """Render ``turns`` with the loaded model's template and generate."""
        prompt, prefix = self.render_turns(turns)
        return await self.generate(prompt, keep_prefix=prefix, **kwargs)

    def stream_chat(self, turns: Sequence[ConversationTurn], **kwargs: Any) -> GenerationStream:
        prompt, prefix = self.render_turns(turns)
        return self.stream(prompt, keep_prefix=prefix, **kwargs)

    def render_turns(self, turns: Sequence[ConversationTurn]):
        return render(turns, self._format), render_system_prefix(turns, self._format)

    def _generate_sync(
        self,
        prompt: str,
        max_tokens: int,
        params: SamplingParams,
        keep_prefix: Optional[str],
        cancel: threading.Event,
        emit: Optional[Callable[[str], None]],
    ) -> GenerationResult:
        session = self._require_session()
        backend = session.backend
        session.reset()
        shifts_before = session.shift_count

        pieces: List[str] = []
        prompt_tokens = 0
        truncated = False
        n_generated = 0

        def result(finish: FinishReason, error: Optional[str] = None) -> GenerationResult:
            return GenerationResult(
                text="".join(pieces),
                finish_reason=finish,
                error=error,
                prompt_tokens=prompt_tokens,
                completion_tokens=n_generated,
                prompt_truncated=truncated,
                context_shifts=session.shift_count - shifts_before,
            )

        try:
            tokens = backend.tokenize(prompt, add_bos=True)
            limit = session.n_ctx - max_tokens - session.policy.margin
            if len(tokens) > limit:
                logger.warning(
                    "Prompt truncated from %d to %d tokens (n_ctx=%d, max_tokens=%d)",
                    len(tokens), limit, session.n_ctx, max_tokens,
                )
                tokens = tokens[:limit]
                truncated = True
            prompt_tokens = len(tokens)

            n_keep = 0
            if keep_prefix and prompt.startswith(keep_prefix):
                n_keep = min(len(backend.tokenize(keep_prefix, add_bos=True)), len(tokens))

            if not session.decode(tokens[:n_keep], cancel):
                return result(FinishReason.CANCELLED)
            session.mark_keep()
            if not session.decode(tokens[n_keep:], cancel):
                return result(FinishReason.CANCELLED)

            sampler = Sampler(params)
            decoder = codecs.getincrementaldecoder("utf-8")("replace")
            finish = FinishReason.LENGTH
            while n_generated < max_tokens:
                if cancel.is_set():
                    finish = FinishReason.CANCELLED
                    break
                token = sampler.sample(backend.logits())
                if backend.is_eog(token):
                    finish = FinishReason.STOP
                    break
                sampler.accept(token)
                n_generated += 1
                # Incomplete multi-byte sequences stay inside the decoder.
                text = decoder.decode(backend.token_to_piece(token))
                if text:
                    pieces.append(text)
                    if emit is not None:
                        emit(text)
                if n_generated < max_tokens:
                    session.decode([token])
            return result(finish)
        except DecodeError as e:
            logger.error("Generation failed after %d tokens: %s", n_generated, e)
            return result(FinishReason.ERROR, str(e))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        if self._handle is None or self._session is None:
            return {"loaded": False}
        return {
            "loaded": True,
            "model": self._handle.name,
            "family": self._handle.family,
            "prompt_format": self._format.value,
            "n_ctx": self._session.n_ctx,
            "n_past": self._session.n_past,
            "n_keep": self._session.n_keep,
        }

    @property
    def sampling(self) -> SamplingParams:
        return self._sampling

    def _params(self, temperature, top_p, top_k, repeat_penalty) -> SamplingParams:
        """Merge per-call overrides onto the engine's default sampling settings."""
        overrides = {
            "temperature": temperature,
            "top_p": top_p,
            "top_k": top_k,
            "repeat_penalty": repeat_penalty,
        }
        return replace(self._sampling, **{k: v for k, v in overrides.items() if v is not None})

    def _check_max_tokens(self, max_tokens: int) -> None:
        n_ctx = self._handle.context_size if self._handle else 0
        if max_tokens <= 0 or max_tokens >= n_ctx - self._shift_policy.margin:
            raise ValueError(f"max_tokens must be in [1, {n_ctx - self._shift_policy.margin}), got {max_tokens}")

    def _require_loaded(self) -> None:
        if self._session is None:
            raise ModelNotLoadedError()

    def _require_session(self) -> ModelSession:
        if self._session is None:
            raise ModelNotLoadedError()
        return self._session

    async def _run(self, fn: Callable, *args: Any):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, *args))
