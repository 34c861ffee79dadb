"""Agent internals -- the reasoning loop and the pieces it is built from.

Module Overview
---------------
**agent_loop.py**
    AgentLoop -- bounded multi-turn loop: generate, parse ``<tool_call>``
    blocks, dispatch through the ToolRegistry, feed results back.

**prompt_builder.py**
    System prompt assembly -- identity, date/time, recent memories and
    behavioral instructions.

**context_compressor.py**
    Recency-biased truncation of a conversation to a token budget.
    Keeps the system prompt and the newest turns.

**model_metadata.py**
    Rough token estimation used for budget checks.

**memory.py**
    Persistent ``(category, key, value)`` memories backing the memory tools.

**config_validator.py**
    Pre-flight checks for HEARTH_HOME, the model file and cloud credentials.

Architecture
------------
1. **Stateless utilities**: compression and estimation are pure functions
   of their inputs.

2. **No circular imports**: modules depend on ``inference``, ``tools``,
   ``privacy`` and hearth_constants, never on the CLI.

3. **AgentLoop as orchestrator**: the loop coordinates these modules but
   doesn't contain their implementation.
"""
