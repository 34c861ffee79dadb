#!/usr/bin/env python3
"""
Hearth CLI

Usage:
    hearth ask "what time is it?" [--model=path/to/model.gguf] [--verbose]
    hearth classify "what is the capital of France"
    hearth redact "email jane@example.com about the invoice"
    hearth tools [--toolsets=system,memory]
    hearth validate
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Union

import fire

from agent.agent_loop import AgentLoop
from agent.config_validator import run_validation
from agent.memory import MemoryStore
from agent.prompt_builder import PromptBuilder
from hearth_cli.config import HearthConfig, get_hearth_home, load_config
from inference.cloud import CloudInferenceClient
from inference.config import ContextShiftPolicy, SamplingParams
from inference.engine import InferenceEngine
from inference.router import HybridRouter
from privacy.classifier import PrivacyClassifier
from tools.registry import ToolRegistry
from tools.system_tools import register_system_tools
from toolsets import resolve_multiple_toolsets

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Keep third-party libraries quiet even in verbose mode
    for name in ("httpx", "httpcore", "openai", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _split_toolsets(toolsets: Union[str, List[str], tuple, None], config: HearthConfig) -> List[str]:
    if toolsets is None:
        return list(config.agent.toolsets)
    if isinstance(toolsets, str):
        return [t.strip() for t in toolsets.split(",") if t.strip()]
    return list(toolsets)


def build_registry(engine: InferenceEngine, memory: MemoryStore, toolset_names: List[str]) -> ToolRegistry:
    """Register built-in tools, keeping only those in the selected toolsets."""
    registry = ToolRegistry()
    register_system_tools(registry, memory=memory, status_fn=engine.status)
    enabled = set(resolve_multiple_toolsets(toolset_names))
    for handler in list(registry.get_available_tools()):
        if handler.name not in enabled:
            registry.unregister(handler.name)
    return registry


async def _ask(config: HearthConfig, prompt: str, toolset_names: List[str]) -> Dict[str, Any]:
    engine = InferenceEngine(
        shift_policy=ContextShiftPolicy(
            margin=config.context_shift.margin,
            discard_ratio=config.context_shift.discard_ratio,
        ),
        sampling=SamplingParams(**config.sampling.model_dump()),
    )
    try:
        await engine.load_model(
            config.model.path,
            context_size=config.model.context_size,
            threads=config.model.threads,
            gpu_layers=config.model.gpu_layers,
            use_mmap=config.model.use_mmap,
            flash_attention=config.model.flash_attention,
            batch_size=config.model.batch_size,
        )
        memory = MemoryStore(get_hearth_home() / "memories.json")
        memory.load_from_disk()
        classifier = PrivacyClassifier()
        loop = AgentLoop(
            engine,
            build_registry(engine, memory, toolset_names),
            prompt_builder=PromptBuilder(memory=memory),
            classifier=classifier,
        )
        cloud = CloudInferenceClient(
            provider=config.cloud.provider,
            model=config.cloud.model,
            base_url=config.cloud.base_url,
        )
        router = HybridRouter(loop, classifier=classifier, cloud=cloud, cloud_enabled=config.cloud.enabled)
        routed = await router.process(prompt)
    finally:
        engine.shutdown()

    output = {
        "response": routed.text,
        "tier": routed.tier.value,
        "model": routed.model,
        "was_redacted": routed.was_redacted,
    }
    if routed.loop_result is not None:
        output["turns_used"] = routed.loop_result.turns_used
        output["tool_calls_made"] = routed.loop_result.tool_calls_made
        output["outcome"] = routed.loop_result.outcome.value
    return output


def ask(prompt: str, model: Optional[str] = None, toolsets=None, verbose: bool = False, as_json: bool = False):
    """Answer one prompt with the local model (or cloud, when cleared and enabled)."""
    setup_logging(verbose)
    config = load_config()
    if model:
        config.model.path = model
    if not config.model.path:
        print("No model configured. Set model.path in config.yaml or pass --model.", file=sys.stderr)
        sys.exit(2)

    result = asyncio.run(_ask(config, prompt, _split_toolsets(toolsets, config)))
    if as_json:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        print(result["response"])


def classify(text: str):
    """Print the privacy tier for a request."""
    tier = PrivacyClassifier().classify(text)
    print(f"{tier.value}: {tier.description}")


def redact(text: str):
    """Print the request with PII replaced by placeholder tokens."""
    print(PrivacyClassifier().redact(text))


def tools(toolsets=None):
    """List the tools the agent would advertise, with their schemas."""
    config = load_config()
    engine = InferenceEngine()
    try:
        registry = build_registry(engine, MemoryStore(), _split_toolsets(toolsets, config))
        for handler in registry.get_available_tools():
            print(f"{handler.name} [{handler.toolset}]: {handler.definition.description}")
    finally:
        engine.shutdown()


def validate():
    """Check HEARTH_HOME, config.yaml, the model file and cloud settings."""
    results = run_validation()
    print(json.dumps(results, indent=2, default=str))
    if not results["is_valid"]:
        sys.exit(1)


def main():
    fire.Fire({
        "ask": ask,
        "classify": classify,
        "redact": redact,
        "tools": tools,
        "validate": validate,
    })


if __name__ == "__main__":
    main()
