#!/usr/bin/env python3
"""
Toolsets Module

Named groups of tools. A toolset lists tools directly and may include other
toolsets; ``resolve_toolset`` flattens the tree into tool names.
"""

import logging
from typing import List, Dict, Any, Set, Optional

logger = logging.getLogger(__name__)


TOOLSETS: Dict[str, Dict[str, Any]] = {
    "system": {
        "description": "Clock and runtime status",
        "tools": ["get_time", "get_status"],
        "includes": []
    },
    "memory": {
        "description": "Persistent memory across sessions",
        "tools": ["save_memory", "recall_memory"],
        "includes": []
    },
    "hearth-default": {
        "description": "Default on-device toolset",
        "tools": [],
        "includes": ["system", "memory"]
    },
}


def get_toolset(name: str) -> Optional[Dict[str, Any]]:
    return TOOLSETS.get(name)


def get_toolset_names() -> List[str]:
    return list(TOOLSETS.keys())


def resolve_toolset(name: str, visited: Set[str] = None) -> List[str]:
    if visited is None:
        visited = set()
    if name in {"all", "*"}:
        all_tools: Set[str] = set()
        for toolset_name in get_toolset_names():
            all_tools.update(resolve_toolset(toolset_name, visited.copy()))
        return sorted(all_tools)
    if name in visited:
        logger.warning("Circular dependency detected in toolset '%s'", name)
        return []
    visited.add(name)
    toolset = TOOLSETS.get(name)
    if not toolset:
        return []
    tools = set(toolset.get("tools", []))
    for included_name in toolset.get("includes", []):
        tools.update(resolve_toolset(included_name, visited.copy()))
    return sorted(tools)


def resolve_multiple_toolsets(toolset_names: List[str]) -> List[str]:
    all_tools: Set[str] = set()
    for name in toolset_names:
        all_tools.update(resolve_toolset(name))
    return sorted(all_tools)


def validate_toolset(name: str) -> bool:
    if name in {"all", "*"}:
        return True
    return name in TOOLSETS


def get_toolset_info(name: str) -> Optional[Dict[str, Any]]:
    toolset = get_toolset(name)
    if not toolset:
        return None
    resolved_tools = resolve_toolset(name)
    return {
        "name": name,
        "description": toolset["description"],
        "direct_tools": toolset["tools"],
        "includes": toolset["includes"],
        "resolved_tools": resolved_tools,
        "tool_count": len(resolved_tools),
        "is_composite": len(toolset["includes"]) > 0
    }
