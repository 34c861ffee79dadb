"""
Base tool abstractions.

Tools follow a simple pattern:
1. Describe themselves with a ToolDefinition (name, description, parameters)
2. Implement execute()
3. Return a ToolResult with output or error

Tool calls use Hermes-style XML tags:
<tool_call>{"name": "get_time", "arguments": {}}</tool_call>
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel


@dataclass(frozen=True)
class ToolProperty:
    type: str
    description: str
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        # Key order is part of the prompt wire format.
        data: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            data["enum"] = list(self.enum)
        return data


@dataclass(frozen=True)
class ToolParameters:
    type: str = "object"
    properties: Dict[str, ToolProperty] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "required": list(self.required),
        }


@dataclass(frozen=True)
class ToolDefinition:
    """JSON schema for a tool, advertised to the model."""

    name: str
    description: str
    parameters: ToolParameters = field(default_factory=ToolParameters)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters.to_dict(),
            },
        }


@dataclass(frozen=True)
class ToolCall:
    """A parsed tool call from model output."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Result from executing a tool. Failures are values, never exceptions."""

    tool_name: str
    call_id: str
    success: bool
    output: str = ""
    error: Optional[str] = None

    @property
    def content(self) -> str:
        """Text fed back to the model."""
        if self.success:
            return self.output
        return self.error or "Tool failed"


class ToolHandler(ABC):
    """
    Abstract base class for tools.

    Subclasses set ``name``, ``toolset`` and ``definition`` and implement
    ``execute``. A subclass may also set ``arguments_model`` to a pydantic
    model; the registry then validates the raw string map against it once
    and ``execute`` receives the model instance instead of the map.
    """

    name: str = ""
    toolset: str = "default"
    definition: ToolDefinition
    arguments_model: Optional[Type[BaseModel]] = None

    def is_available(self) -> bool:
        """Tools returning False are hidden from the model and refuse dispatch."""
        return True

    @abstractmethod
    async def execute(self, arguments: Any) -> ToolResult:
        pass

    def parse_arguments(self, arguments: Dict[str, str]) -> Any:
        if self.arguments_model is None:
            return arguments
        return self.arguments_model.model_validate(arguments)

    def success(self, output: str) -> ToolResult:
        return ToolResult(tool_name=self.name, call_id="", success=True, output=output)

    def failure(self, error: str) -> ToolResult:
        return ToolResult(tool_name=self.name, call_id="", success=False, error=error)
