"""Tests for inference.engine using the in-process fake backend."""

import asyncio
import logging
import threading

import pytest

import inference.engine as engine_module
from inference.config import SamplingParams
from inference.engine import InferenceEngine
from inference.errors import ModelNotLoadedError
from inference.types import ConversationTurn, FinishReason
from tests.fakes import fake_backend

MODEL = "models/qwen2.5-1.5b-instruct-q4_k_m.gguf"


async def _loaded_engine(scripts=(), **kwargs):
    make = fake_backend.factory(scripts, **kwargs)
    engine = InferenceEngine(backend_factory=make)
    await engine.load_model(MODEL)
    return engine, make


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_generate_without_model_raises(self):
        engine = InferenceEngine(backend_factory=fake_backend.factory())
        with pytest.raises(ModelNotLoadedError):
            await engine.generate("hi")
        with pytest.raises(ModelNotLoadedError):
            engine.stream("hi")
        with pytest.raises(ModelNotLoadedError):
            await engine.tokenize("hi")
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_load_reports_family_and_context(self):
        engine, _ = await _loaded_engine()
        handle = engine.handle
        assert handle.family == "qwen2.5"
        assert handle.context_size == 4096
        assert engine.status()["loaded"] is True
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_context_capped_by_family_default(self):
        engine = InferenceEngine(backend_factory=fake_backend.factory())
        handle = await engine.load_model("phi-3-mini-4k.gguf", context_size=16384)
        assert handle.context_size == 4096
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_reload_unloads_previous_model(self):
        engine, make = await _loaded_engine()
        await engine.load_model("models/gemma-2b-it.gguf")
        assert make.created[0].closed is True
        assert engine.handle.family == "gemma"
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_unload(self):
        engine, make = await _loaded_engine()
        await engine.unload()
        assert not engine.is_loaded
        assert engine.status() == {"loaded": False}
        engine.shutdown()


class TestGenerate:
    @pytest.mark.asyncio
    async def test_generates_scripted_text_and_stops(self):
        engine, _ = await _loaded_engine(["Hello there"])
        result = await engine.generate("Say hi", max_tokens=64)
        assert result.text == "Hello there"
        assert result.finish_reason is FinishReason.STOP
        assert result.completion_tokens == len("Hello there")
        assert result.prompt_tokens == len("Say hi") + 1
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_max_tokens_limits_output(self):
        engine, _ = await _loaded_engine(["abcdefghij"])
        result = await engine.generate("go", max_tokens=4)
        assert result.text == "abcd"
        assert result.finish_reason is FinishReason.LENGTH
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_each_call_starts_from_fresh_cache(self):
        engine, make = await _loaded_engine(["one", "two"])
        first = await engine.generate("a")
        second = await engine.generate("b")
        assert (first.text, second.text) == ("one", "two")
        assert make.created[0].cache[0] == fake_backend.BOS
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_decode_error_returned_as_value(self):
        engine, _ = await _loaded_engine(["text"], fail_on_decode=2)
        result = await engine.generate("prompt", max_tokens=16)
        assert result.finish_reason is FinishReason.ERROR
        assert "fake decode failure" in result.error
        assert not result.ok
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_long_prompt_truncated_and_logged(self, caplog):
        engine, _ = await _loaded_engine(["ok"])
        with caplog.at_level(logging.WARNING, logger="inference.engine"):
            result = await engine.generate("x" * 5000, max_tokens=100)
        assert result.prompt_truncated
        assert result.prompt_tokens == 4096 - 100 - 4
        assert "Prompt truncated" in caplog.text
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_max_tokens_must_fit_window(self):
        engine, _ = await _loaded_engine()
        with pytest.raises(ValueError):
            await engine.generate("hi", max_tokens=4096)
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        engine, make = await _loaded_engine(["never"])
        cancel = threading.Event()
        cancel.set()
        result = await engine.generate("hi", cancel=cancel)
        assert result.finish_reason is FinishReason.CANCELLED
        assert result.text == ""
        assert engine.session.n_past == len(make.created[0].cache)
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_cancelling_task_stops_decoding(self):
        engine, make = await _loaded_engine(["a" * 200, "next"], decode_delay=0.01)
        task = asyncio.create_task(engine.generate("hi", max_tokens=300))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # The worker stops at the next token and is free for the next request.
        result = await asyncio.wait_for(engine.generate("hi", max_tokens=16), timeout=1.0)
        assert result.text == "next"
        assert make.created[0].decode_calls < 100
        assert engine.session.n_past == len(make.created[0].cache)
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_keep_prefix_protects_system_segment(self):
        engine, _ = await _loaded_engine(["fine"])
        turns = [ConversationTurn.system("You are terse."), ConversationTurn.user("hello")]
        result = await engine.chat(turns, max_tokens=8)
        assert result.text == "fine"
        prefix = "<|im_start|>system\nYou are terse.<|im_end|>\n"
        assert engine.session.n_keep == len(prefix.encode()) + 1
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_generations_are_serialized(self):
        engine, _ = await _loaded_engine(["first", "second", "third"])
        results = await asyncio.gather(*(engine.generate(f"p{i}") for i in range(3)))
        assert sorted(r.text for r in results) == ["first", "second", "third"]
        engine.shutdown()


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_chunks_and_result(self):
        engine, _ = await _loaded_engine(["stream me"])
        stream = engine.stream("go", max_tokens=32)
        chunks = [chunk async for chunk in stream]
        assert "".join(chunks) == "stream me"
        assert stream.result.finish_reason is FinishReason.STOP
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_multibyte_characters_never_split(self):
        engine, _ = await _loaded_engine(["héllo wörld 日本"])
        stream = engine.stream("go", max_tokens=64)
        chunks = [chunk async for chunk in stream]
        assert "".join(chunks) == "héllo wörld 日本"
        assert all("�" not in c for c in chunks)
        assert "é" in chunks and "日" in chunks
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_trailing_partial_sequence_held_back(self):
        # "é" is two bytes; max_tokens stops after the first one.
        engine, _ = await _loaded_engine(["aé"])
        stream = engine.stream("go", max_tokens=2)
        chunks = [chunk async for chunk in stream]
        assert chunks == ["a"]
        assert stream.result.text == "a"
        assert stream.result.completion_tokens == 2
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_stops_stream(self):
        engine, _ = await _loaded_engine(["a" * 200], decode_delay=0.01)
        stream = engine.stream("go", max_tokens=300)
        received = []
        async for chunk in stream:
            received.append(chunk)
            if len(received) == 3:
                stream.cancel()
        assert stream.result.finish_reason is FinishReason.CANCELLED
        assert len(stream.result.text) < 200
        assert engine.session.n_past == len(engine.session.backend.cache)
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_stream_chat_collect(self):
        engine, _ = await _loaded_engine(["done"])
        stream = engine.stream_chat([ConversationTurn.user("hi")], max_tokens=8)
        result = await stream.collect()
        assert result.text == "done"
        engine.shutdown()


class TestTokenize:
    @pytest.mark.asyncio
    async def test_tokenize_and_count(self):
        engine, _ = await _loaded_engine()
        assert await engine.tokenize("ab") == [fake_backend.BOS, ord("a") + 3, ord("b") + 3]
        assert await engine.count_tokens("abc") == 3
        engine.shutdown()


class TestSamplingDefaults:
    @pytest.mark.asyncio
    async def test_engine_defaults_reach_sampler(self, monkeypatch):
        seen = []
        real_sampler = engine_module.Sampler

        def capture(params):
            seen.append(params)
            return real_sampler(params)

        monkeypatch.setattr(engine_module, "Sampler", capture)
        defaults = SamplingParams(temperature=0.2, top_p=0.5, top_k=8, repeat_penalty=1.3, repeat_last_n=16, seed=9)
        engine = InferenceEngine(backend_factory=fake_backend.factory(["one", "two"]), sampling=defaults)
        await engine.load_model(MODEL)

        await engine.generate("hi", max_tokens=8)
        await engine.generate("hi", max_tokens=8, temperature=0.9)

        assert seen[0] == defaults
        assert seen[1].temperature == 0.9
        assert (seen[1].top_k, seen[1].repeat_last_n, seen[1].seed) == (8, 16, 9)
        engine.shutdown()
