"""Chat templates for the local model families we ship support for.

The family is inferred from the GGUF file name. Every format renders a list
of ``ConversationTurn`` into a single prompt string ending with an open
assistant header, ready for generation.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from inference.types import ConversationTurn, Role


class ModelFamily(str, Enum):
    QWEN25 = "qwen2.5"
    PHI3 = "phi3"
    LLAMA3 = "llama3"
    GEMMA = "gemma"
    GENERIC = "generic"


class PromptFormat(str, Enum):
    CHATML = "chatml"
    PHI3 = "phi3"
    LLAMA3 = "llama3"
    GEMMA = "gemma"
    ALPACA = "alpaca"


FAMILY_CONTEXT_LENGTHS: Dict[ModelFamily, int] = {
    ModelFamily.QWEN25: 32768,
    ModelFamily.PHI3: 4096,
    ModelFamily.LLAMA3: 8192,
    ModelFamily.GEMMA: 8192,
    ModelFamily.GENERIC: 4096,
}

FAMILY_PROMPT_FORMATS: Dict[ModelFamily, PromptFormat] = {
    ModelFamily.QWEN25: PromptFormat.CHATML,
    ModelFamily.PHI3: PromptFormat.PHI3,
    ModelFamily.LLAMA3: PromptFormat.LLAMA3,
    ModelFamily.GEMMA: PromptFormat.GEMMA,
    ModelFamily.GENERIC: PromptFormat.CHATML,
}

# Checked in order; first substring hit wins.
_FAMILY_PATTERNS: Tuple[Tuple[str, ModelFamily], ...] = (
    ("qwen", ModelFamily.QWEN25),
    ("phi-3", ModelFamily.PHI3),
    ("phi3", ModelFamily.PHI3),
    ("llama-3", ModelFamily.LLAMA3),
    ("llama3", ModelFamily.LLAMA3),
    ("gemma", ModelFamily.GEMMA),
)


def detect_family(model_path: str) -> ModelFamily:
    name = Path(model_path).name.lower()
    for pattern, family in _FAMILY_PATTERNS:
        if pattern in name:
            return family
    return ModelFamily.GENERIC


def _chatml(turns: Sequence[ConversationTurn]) -> str:
    parts = [f"<|im_start|>{t.role.value}\n{t.content}<|im_end|>\n" for t in turns]
    parts.append("<|im_start|>assistant\n")
    return "".join(parts)


def _phi3(turns: Sequence[ConversationTurn]) -> str:
    parts = []
    for t in turns:
        # Phi-3 has no tool role; tool output is fed back as a user turn.
        role = Role.USER.value if t.role is Role.TOOL else t.role.value
        parts.append(f"<|{role}|>\n{t.content}<|end|>\n")
    parts.append("<|assistant|>\n")
    return "".join(parts)


def _llama3(turns: Sequence[ConversationTurn]) -> str:
    parts = ["<|begin_of_text|>"]
    for t in turns:
        role = "ipython" if t.role is Role.TOOL else t.role.value
        parts.append(f"<|start_header_id|>{role}<|end_header_id|>\n\n{t.content}<|eot_id|>")
    parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")
    return "".join(parts)


def _gemma(turns: Sequence[ConversationTurn]) -> str:
    # Gemma has no system role: the system text is prepended to the first user turn.
    parts: List[str] = []
    pending_system = ""
    for t in turns:
        if t.role is Role.SYSTEM:
            pending_system += t.content + "\n\n"
            continue
        role = "model" if t.role is Role.ASSISTANT else "user"
        content = t.content
        if pending_system and role == "user":
            content = pending_system + content
            pending_system = ""
        parts.append(f"<start_of_turn>{role}\n{content}<end_of_turn>\n")
    if pending_system:
        parts.append(f"<start_of_turn>user\n{pending_system.rstrip()}<end_of_turn>\n")
    parts.append("<start_of_turn>model\n")
    return "".join(parts)


def _alpaca(turns: Sequence[ConversationTurn]) -> str:
    headers = {
        Role.SYSTEM: "",
        Role.USER: "### Instruction:\n",
        Role.ASSISTANT: "### Response:\n",
        Role.TOOL: "### Input:\n",
    }
    parts = [f"{headers[t.role]}{t.content}\n\n" for t in turns]
    parts.append("### Response:\n")
    return "".join(parts)


_ASSISTANT_OPEN = {
    PromptFormat.CHATML: "<|im_start|>assistant\n",
    PromptFormat.PHI3: "<|assistant|>\n",
    PromptFormat.LLAMA3: "<|start_header_id|>assistant<|end_header_id|>\n\n",
    PromptFormat.GEMMA: "<start_of_turn>model\n",
    PromptFormat.ALPACA: "### Response:\n",
}

_RENDERERS = {
    PromptFormat.CHATML: _chatml,
    PromptFormat.PHI3: _phi3,
    PromptFormat.LLAMA3: _llama3,
    PromptFormat.GEMMA: _gemma,
    PromptFormat.ALPACA: _alpaca,
}


def render(turns: Sequence[ConversationTurn], fmt: PromptFormat = PromptFormat.CHATML) -> str:
    return _RENDERERS[fmt](turns)


def render_system_prefix(turns: Sequence[ConversationTurn], fmt: PromptFormat = PromptFormat.CHATML) -> str:
    """Render only the leading system turn, as it appears at the start of ``render``.

    Used as the protected prefix for context shifts. Empty when the first
    turn is not a system turn or the format folds system text into a user turn.
    """
    if not turns or turns[0].role is not Role.SYSTEM or fmt is PromptFormat.GEMMA:
        return ""
    full = render(turns[:1], fmt)
    return full[:len(full) - len(_ASSISTANT_OPEN[fmt])]
