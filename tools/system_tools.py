"""
Built-in system tools: clock, runtime status and persistent memory.

``register_system_tools`` wires them into a registry; the status tool takes
a zero-argument callable so it never holds a reference to the engine.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Literal, Optional

from pydantic import BaseModel

from agent.memory import MEMORY_CATEGORIES, MemoryProvider
from tools.base import ToolDefinition, ToolHandler, ToolParameters, ToolProperty, ToolResult
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MemoryCategory = Literal["user_profile", "agent_note"]


class GetTimeTool(ToolHandler):
    name = "get_time"
    toolset = "system"
    definition = ToolDefinition(
        name="get_time",
        description="Get the current date and time. Use when the user asks what time or day it is.",
    )

    def __init__(self, clock: Callable[[], datetime] = None):
        self._clock = clock or (lambda: datetime.now().astimezone())

    async def execute(self, arguments: Dict[str, str]) -> ToolResult:
        now = self._clock()
        hour = now.strftime("%I").lstrip("0") or "12"
        text = f"{now.strftime('%A, %B')} {now.day}, {now.year} at {hour}:{now.strftime('%M:%S %p %Z')}"
        return self.success(text.strip())


class GetStatusTool(ToolHandler):
    name = "get_status"
    toolset = "system"
    definition = ToolDefinition(
        name="get_status",
        description="Get the system status including agent health and model info.",
    )

    def __init__(self, status_fn: Callable[[], Dict[str, Any]]):
        self._status_fn = status_fn

    async def execute(self, arguments: Dict[str, str]) -> ToolResult:
        try:
            status = self._status_fn()
        except Exception as e:
            return self.failure(str(e))
        return self.success(json.dumps(status, ensure_ascii=False, default=str))


class SaveMemoryArgs(BaseModel):
    category: MemoryCategory
    key: str
    value: str


class RecallMemoryArgs(BaseModel):
    category: Optional[MemoryCategory] = None
    search: Optional[str] = None


class SaveMemoryTool(ToolHandler):
    name = "save_memory"
    toolset = "memory"
    arguments_model = SaveMemoryArgs
    definition = ToolDefinition(
        name="save_memory",
        description=(
            "Save a fact or preference to persistent memory for recall in future sessions. "
            "Use when you learn something important about the user."
        ),
        parameters=ToolParameters(
            properties={
                "category": ToolProperty("string", "Memory category", list(MEMORY_CATEGORIES)),
                "key": ToolProperty(
                    "string", "A short key describing the memory (e.g. 'favorite_music', 'work_schedule')"
                ),
                "value": ToolProperty("string", "The value to remember"),
            },
            required=["category", "key", "value"],
        ),
    )

    def __init__(self, memory: MemoryProvider):
        self._memory = memory

    async def execute(self, arguments: SaveMemoryArgs) -> ToolResult:
        self._memory.save_memory(arguments.category, arguments.key, arguments.value)
        return self.success(f"Saved to memory: [{arguments.category}] {arguments.key} = {arguments.value}")


class RecallMemoryTool(ToolHandler):
    name = "recall_memory"
    toolset = "memory"
    arguments_model = RecallMemoryArgs
    definition = ToolDefinition(
        name="recall_memory",
        description=(
            "Recall previously saved memories. "
            "Use to look up user preferences or agent notes from past sessions."
        ),
        parameters=ToolParameters(
            properties={
                "category": ToolProperty("string", "Category to search in", list(MEMORY_CATEGORIES)),
                "search": ToolProperty("string", "Optional search term to filter memories"),
            },
        ),
    )

    def __init__(self, memory: MemoryProvider):
        self._memory = memory

    async def execute(self, arguments: RecallMemoryArgs) -> ToolResult:
        memories = self._memory.recall_memory(arguments.category, arguments.search)
        if not memories:
            where = f" in category '{arguments.category}'" if arguments.category else ""
            matching = f" matching '{arguments.search}'" if arguments.search else ""
            return self.success(f"No memories found{where}{matching}.")
        return self.success("\n".join(f"[{m.category}] {m.key}: {m.value}" for m in memories))


def register_system_tools(
    registry: ToolRegistry,
    memory: Optional[MemoryProvider] = None,
    status_fn: Optional[Callable[[], Dict[str, Any]]] = None,
) -> None:
    registry.register(GetTimeTool())
    if status_fn is not None:
        registry.register(GetStatusTool(status_fn))
    if memory is not None:
        registry.register(SaveMemoryTool(memory))
        registry.register(RecallMemoryTool(memory))
