"""Persistent agent memory.

Memories are small ``(category, key, value)`` facts the model saves through
the ``save_memory`` tool and reads back through ``recall_memory``. Recent
memories are also injected into the system prompt.

``MemoryStore`` keeps entries in memory and, when given a path, mirrors
them to a JSON file (``$HEARTH_HOME/memories.json`` by default).
"""

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

MEMORY_CATEGORIES = ("user_profile", "agent_note")
MAX_PROMPT_MEMORIES = 20
MAX_PROMPT_CHARS = 1500


@dataclass
class MemoryEntry:
    category: str
    key: str
    value: str
    updated_at: float = 0.0


class MemoryProvider(Protocol):
    def save_memory(self, category: str, key: str, value: str) -> MemoryEntry: ...

    def recall_memory(self, category: Optional[str] = None, search: Optional[str] = None) -> List[MemoryEntry]: ...

    def recent(self, limit: int = MAX_PROMPT_MEMORIES) -> List[MemoryEntry]: ...


class MemoryStore:
    """Thread-safe memory store with optional JSON persistence."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._entries: dict = {}
        self._lock = threading.Lock()

    def load_from_disk(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read memories from %s: %s", self.path, e)
            return
        if not isinstance(raw, list):
            logger.warning("Ignoring memories file %s: expected a JSON list", self.path)
            return
        with self._lock:
            for item in raw:
                try:
                    entry = MemoryEntry(**item)
                except TypeError:
                    logger.warning("Skipping malformed memory entry: %.100s", item)
                    continue
                self._entries[(entry.category, entry.key)] = entry
        logger.debug("Loaded %d memories from %s", len(self._entries), self.path)

    def _save_to_disk(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [asdict(e) for e in self._entries.values()]
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def save_memory(self, category: str, key: str, value: str) -> MemoryEntry:
        """Insert or update the memory identified by ``(category, key)``."""
        entry = MemoryEntry(category=category, key=key, value=value, updated_at=time.time())
        with self._lock:
            # Pop first so an update moves the entry to the most recent position.
            self._entries.pop((category, key), None)
            self._entries[(category, key)] = entry
            self._save_to_disk()
        logger.debug("Saved memory: [%s] %s", category, key)
        return entry

    def delete_memory(self, category: str, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop((category, key), None) is not None
            if removed:
                self._save_to_disk()
        return removed

    def recall_memory(self, category: Optional[str] = None, search: Optional[str] = None) -> List[MemoryEntry]:
        """Filter by category and/or a case-insensitive search term.

        With neither given, returns the most recent memories.
        """
        if category is None and search is None:
            return self.recent()
        with self._lock:
            entries = list(self._entries.values())
        if category is not None:
            entries = [e for e in entries if e.category == category]
        if search is not None:
            needle = search.lower()
            entries = [e for e in entries if needle in e.key.lower() or needle in e.value.lower()]
        return entries

    def recent(self, limit: int = MAX_PROMPT_MEMORIES) -> List[MemoryEntry]:
        with self._lock:
            entries = list(self._entries.values())
        return list(reversed(entries))[:limit]


def build_memory_prompt_block(
    memories: Iterable[MemoryEntry],
    max_items: int = MAX_PROMPT_MEMORIES,
    max_chars: int = MAX_PROMPT_CHARS,
) -> str:
    """Render memories for the system prompt, capped by count and characters."""
    memories = list(memories)[:max_items]
    if not memories:
        return ""
    header = "# Memory\nYou have the following memories from previous sessions:"
    lines = [header]
    total = len(header)
    for m in memories:
        line = f"- [{m.category}] {m.key}: {m.value}"
        if total + len(line) > max_chars:
            break
        lines.append(line)
        total += len(line)
    if len(lines) == 1:
        return ""
    return "\n".join(lines)
