"""Shared constants for Hearth.

Import-safe module with no dependencies -- can be imported from anywhere
without risk of circular imports.
"""

HEARTH_HOME_ENV = "HEARTH_HOME"
DEFAULT_HEARTH_DIRNAME = ".hearth"

# Agent loop bounds
MAX_TURNS = 5
GENERATION_MAX_TOKENS = 512
TOOL_TEMPERATURE = 0.4
RESPONSE_TEMPERATURE = 0.7
CONTEXT_WINDOW = 4096

# Native decode defaults
DEFAULT_BATCH_SIZE = 512
CONTEXT_SHIFT_MARGIN = 4
CONTEXT_SHIFT_DISCARD_RATIO = 0.5
REPEAT_LAST_N = 64

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_API_KEY_ENV = "ANTHROPIC_API_KEY"
OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
