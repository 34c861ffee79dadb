"""Value types shared by the engine, the agent loop and the router."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> "ConversationTurn":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(Role.ASSISTANT, content)

    @classmethod
    def tool(cls, content: str) -> "ConversationTurn":
        return cls(Role.TOOL, content)


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one generation call. Decode failures land in ``error``."""

    text: str
    finish_reason: FinishReason
    error: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    prompt_truncated: bool = False
    context_shifts: int = 0

    @property
    def ok(self) -> bool:
        return self.finish_reason is not FinishReason.ERROR


@dataclass(frozen=True)
class ModelHandle:
    """Describes the currently loaded model."""

    path: str
    name: str
    family: str
    context_size: int
    batch_size: int
