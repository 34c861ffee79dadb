#!/usr/bin/env python3
"""
Tools Package

Tool plumbing for the on-device agent:

- base: ToolDefinition schemas, ToolCall/ToolResult values and the ToolHandler ABC
- parser: extraction of ``<tool_call>`` blocks from model output
- registry: name -> handler map, the ``# Tools`` prompt block and dispatch
- system_tools: built-in clock, status and memory tools

Toolset grouping lives in the top-level toolsets.py.
"""

from .base import ToolCall, ToolDefinition, ToolHandler, ToolParameters, ToolProperty, ToolResult
from .parser import format_tool_response, has_tool_call, parse_tool_calls, strip_tool_calls
from .registry import ToolRegistry

__all__ = [
    'ToolCall',
    'ToolDefinition',
    'ToolHandler',
    'ToolParameters',
    'ToolProperty',
    'ToolResult',
    'ToolRegistry',
    'format_tool_response',
    'has_tool_call',
    'parse_tool_calls',
    'strip_tool_calls',
]
