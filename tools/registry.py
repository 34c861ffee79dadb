"""
Tool registry -- name to handler map, availability filtering, dispatch and
the ``# Tools`` prompt block.

Registration and dispatch may race (tools register at startup while the
agent loop is already dispatching), so the handler map is guarded by a lock.
Handlers are invoked outside the lock.
"""

import json
import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from tools.base import ToolCall, ToolHandler, ToolResult

logger = logging.getLogger(__name__)

TOOLS_PROMPT_HEADER = (
    "\n"
    "# Tools\n"
    "\n"
    "You may call one or more functions to assist with the user query.\n"
    "\n"
    "You are provided with function signatures within <tools></tools> XML tags:\n"
)

TOOLS_PROMPT_FOOTER = (
    "\n"
    "For each function call, return a json object with function name and arguments "
    "within <tool_call></tool_call> XML tags:\n"
    "<tool_call>\n"
    '{"name": "function_name", "arguments": {"arg1": "value1"}}\n'
    "</tool_call>\n"
)


def normalize_argument(value: Any) -> str:
    """Flatten one JSON argument value into the string a handler consumes.

    Strings wrapped in a pair of double quotes lose them; other JSON values
    are re-serialized.
    """
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False)
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1]
    return text


class ToolRegistry:
    """Registry of tool handlers."""

    def __init__(self):
        self._tools: Dict[str, ToolHandler] = {}
        self._lock = threading.RLock()

    def register(self, handler: ToolHandler) -> None:
        """Register a handler, replacing any existing one with the same name."""
        with self._lock:
            replaced = handler.name in self._tools
            self._tools[handler.name] = handler
        logger.debug("Registered tool: %s (toolset=%s%s)", handler.name, handler.toolset,
                     ", replaced" if replaced else "")

    def unregister(self, name: str) -> None:
        with self._lock:
            self._tools.pop(name, None)

    def get_tool(self, name: str) -> Optional[ToolHandler]:
        """Look up a handler regardless of availability."""
        with self._lock:
            return self._tools.get(name)

    @property
    def registered_count(self) -> int:
        with self._lock:
            return len(self._tools)

    def _snapshot(self) -> List[ToolHandler]:
        with self._lock:
            return list(self._tools.values())

    @staticmethod
    def _check_available(handler: ToolHandler) -> bool:
        try:
            return bool(handler.is_available())
        except Exception as e:
            logger.warning("Tool %s availability check failed: %s", handler.name, e)
            return False

    def get_available_tools(self) -> List[ToolHandler]:
        return [h for h in self._snapshot() if self._check_available(h)]

    def get_tools_by_toolset(self, toolset: str) -> List[ToolHandler]:
        return [h for h in self.get_available_tools() if h.toolset == toolset]

    async def dispatch(self, call: ToolCall) -> ToolResult:
        """Execute a tool call. Always returns a ToolResult, never raises."""
        handler = self.get_tool(call.name)
        if handler is None:
            return self._failure(call, f"Unknown tool: {call.name}")
        if not self._check_available(handler):
            return self._failure(call, f"Tool '{call.name}' is currently unavailable")

        args = {key: normalize_argument(value) for key, value in call.arguments.items()}
        try:
            parsed = handler.parse_arguments(args)
        except ValidationError as e:
            logger.warning("Tool %s rejected arguments: %s", call.name, e)
            return self._failure(call, f"Invalid arguments for {call.name}: {e}")
        except Exception as e:
            logger.warning("Tool %s argument parsing failed: %s", call.name, e, exc_info=True)
            return self._failure(call, f"Invalid arguments for {call.name}: {e}")

        try:
            logger.debug("Dispatching tool: %s with args: %s", call.name, args)
            result = await handler.execute(parsed)
        except Exception as e:
            logger.warning("Tool %s execution failed: %s", call.name, e, exc_info=True)
            return self._failure(call, f"Tool execution failed: {e}")

        if not isinstance(result, ToolResult):
            return self._failure(call, f"Tool {call.name} returned {type(result).__name__}, not ToolResult")
        return replace(result, tool_name=call.name, call_id=call.id)

    @staticmethod
    def _failure(call: ToolCall, error: str) -> ToolResult:
        return ToolResult(tool_name=call.name, call_id=call.id, success=False, output="", error=error)

    def tool_schemas(self) -> List[Dict[str, Any]]:
        return [h.definition.to_dict() for h in self.get_available_tools()]

    def generate_tools_prompt_block(self) -> str:
        """Render available tools in the Hermes ``<tools>`` format, or "" if none."""
        schemas = self.tool_schemas()
        if not schemas:
            return ""
        tools_json = json.dumps(schemas, ensure_ascii=False, separators=(",", ":"))
        return f"{TOOLS_PROMPT_HEADER}<tools>\n{tools_json}\n</tools>\n{TOOLS_PROMPT_FOOTER}"
