"""
Parse ``<tool_call>`` blocks out of raw model output.

Qwen2.5-style models emit calls as::

    <tool_call>
    {"name": "get_time", "arguments": {}}
    </tool_call>

Malformed blocks are skipped with a warning; parsing never raises.
"""

import json
import logging
import re
import uuid
from typing import List

from tools.base import ToolCall, ToolResult

logger = logging.getLogger(__name__)

TOOL_CALL_RE = re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL)
# Unterminated trailing block, e.g. when generation hit max_tokens mid-call.
_DANGLING_TOOL_CALL_RE = re.compile(r"<tool_call>(?!.*</tool_call>).*\Z", re.DOTALL)


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_tool_calls(text: str) -> List[ToolCall]:
    """Extract all tool calls in emission order."""
    calls = []
    for match in TOOL_CALL_RE.finditer(text):
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed tool call: %s", e)
            continue
        if not isinstance(data, dict) or not isinstance(data.get("name"), str) or not data["name"]:
            logger.warning("Skipping tool call without a name: %.100s", match.group(1))
            continue
        arguments = data.get("arguments") or {}
        if isinstance(arguments, str):
            # Some models double-encode the arguments object.
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(ToolCall(id=_new_call_id(), name=data["name"], arguments=arguments))
    return calls


def has_tool_call(text: str) -> bool:
    return TOOL_CALL_RE.search(text) is not None


def strip_tool_calls(text: str) -> str:
    """Remove tool-call markup, leaving only the plain text."""
    text = TOOL_CALL_RE.sub("", text)
    text = _DANGLING_TOOL_CALL_RE.sub("", text)
    return text.strip()


def format_tool_response(result: ToolResult) -> str:
    payload = json.dumps(result.content, ensure_ascii=False)
    name = json.dumps(result.tool_name, ensure_ascii=False)
    return f"<tool_response>\n{{\"name\": {name}, \"content\": {payload}}}\n</tool_response>\n"
