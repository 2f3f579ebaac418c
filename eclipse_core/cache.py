"""
Memory Cache - Decoded memories, kept in RAM per scope.

Search needs every memory with its vector. Decoding all of that from
SQLite on every query is wasteful, so we keep one snapshot per scope.

The cache registers itself as a storage listener:
- memory_changed(scope): a write happened, drop the snapshot
- memory_accessed(scope, ids, timestamp): a search hit, patch counts in place
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from eclipse_core.embeddings import decode_vector
from eclipse_core.models import Memory
from eclipse_core.storage import Storage

logger = logging.getLogger("eclipse_core.cache")


@dataclass
class CachedMemory:
    memory: Memory
    vector: Optional[np.ndarray] = None


class MemoryCache:
    def __init__(self):
        self._entries: dict[str, list[CachedMemory]] = {}
        self.builds = 0

    def get_or_build(self, storage: Storage) -> list[CachedMemory]:
        """The snapshot for the storage's scope, decoded on first use."""
        entries = self._entries.get(storage.scope)
        if entries is None:
            entries = [
                CachedMemory(memory=memory, vector=decode_vector(blob))
                for memory, blob in storage.load_memories()
            ]
            self._entries[storage.scope] = entries
            self.builds += 1
            logger.debug(f"Cached {len(entries)} memories for scope {storage.scope}")
        return entries

    def invalidate(self, scope: str) -> None:
        self._entries.pop(scope, None)

    def clear(self) -> None:
        self._entries.clear()

    def is_cached(self, scope: str) -> bool:
        return scope in self._entries

    # Storage listener interface

    def memory_changed(self, scope: str) -> None:
        self.invalidate(scope)

    def memory_accessed(self, scope: str, memory_ids: list[str], timestamp: str) -> None:
        entries = self._entries.get(scope)
        if not entries:
            return
        touched = set(memory_ids)
        for entry in entries:
            if entry.memory.id in touched:
                entry.memory.access_count += 1
                entry.memory.last_accessed_at = timestamp
