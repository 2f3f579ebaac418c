"""
Memory Service - Save, update and forget memories.

Every tool that creates or destroys memories (save, update, forget,
merge, prune) goes through here, so vectors get generated the same way
everywhere and links never point at deleted memories.
"""

import logging
from collections import defaultdict
from typing import Optional

from eclipse_core.context import CoreContext
from eclipse_core.embeddings import embedding_text, encode_vector
from eclipse_core.keywords import extract_tags
from eclipse_core.models import Memory, Scope

logger = logging.getLogger("eclipse_core.memory")


class MemoryService:
    def __init__(self, ctx: CoreContext):
        self.ctx = ctx

    async def _vector_bytes(self, title: str, content: str) -> Optional[bytes]:
        vector = await self.ctx.embedder.embed(embedding_text(title, content))
        return encode_vector(vector)

    async def save(
        self,
        kind: str,
        category: str,
        title: str,
        content: str,
        tags: Optional[list[str]] = None,
        confidence: float = 1.0,
        scope: str = Scope.PROFILE.value,
    ) -> Memory:
        """Store a memory. Missing tags are derived from title + content.

        Without a working embedding model the memory is still saved
        (without a vector) and stays reachable by keyword search.
        """
        store = self.ctx.store_for_write(scope)
        if tags is None:
            tags = extract_tags(title, content)

        embedding = await self._vector_bytes(title, content)
        memory = store.insert_memory(
            kind=kind,
            category=category,
            title=title,
            content=content,
            tags=tags,
            confidence=confidence,
            embedding=embedding,
        )
        if embedding is None:
            logger.info(f"Saved memory {memory.short_id} without a vector")
        return memory

    async def update(
        self,
        ref: str,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
        confidence: Optional[float] = None,
    ) -> Memory:
        """Change a memory. A content change regenerates its vector.

        Raises:
            MemoryNotFound
        """
        memory, store = self.ctx.locate(ref)

        changes = {}
        if content is not None and content != memory.content:
            changes["content"] = content
            changes["embedding"] = await self._vector_bytes(memory.title, content)
        if tags is not None:
            changes["tags"] = tags
        if confidence is not None:
            changes["confidence"] = confidence

        store.update_memory(memory.id, **changes)
        return store.get_memory(memory.id)

    def forget(self, ref: str, reason: str = "") -> Memory:
        """Delete one memory (and its links). Returns what was deleted.

        Raises:
            MemoryNotFound
        """
        memory, _ = self.ctx.locate(ref)
        self.delete([memory])
        logger.info(f"Forgot memory {memory.short_id} ({memory.title}): {reason or 'no reason given'}")
        return memory

    def delete(self, memories: list[Memory]) -> int:
        """Delete memories from their stores and links to them from every store."""
        if not memories:
            return 0

        by_scope = defaultdict(list)
        for memory in memories:
            by_scope[memory.scope].append(memory.id)

        deleted = 0
        for scope, ids in by_scope.items():
            deleted += self.ctx.stores_for(scope)[0].delete_memories(ids)

        # A link lives in its source's store but may point across stores
        all_ids = [m.id for m in memories]
        for store in self.ctx.all_stores():
            store.delete_links_touching(all_ids)

        return deleted

    def stats(self, scope: str = Scope.ALL.value, top: int = 5) -> dict:
        """Counts by kind, most used and never used memories."""
        by_kind: dict[str, int] = {}
        total = 0
        never_accessed = 0
        top_accessed: list[Memory] = []
        without_vector = 0

        for store in self.ctx.stores_for(scope):
            for kind, count in store.count_by_kind().items():
                by_kind[kind] = by_kind.get(kind, 0) + count
            total += store.memory_count()
            never_accessed += store.never_accessed_count()
            top_accessed.extend(store.top_accessed(top))
            without_vector += len(store.memories_without_embedding())

        top_accessed.sort(key=lambda m: m.access_count, reverse=True)
        return {
            "profile": self.ctx.profile,
            "scope": scope,
            "total": total,
            "by_kind": by_kind,
            "never_accessed": never_accessed,
            "without_embedding": without_vector,
            "top_accessed": top_accessed[:top],
            "decisions": self.ctx.profile_store.decision_count(),
            "embeddings": self.ctx.embedder.status(),
        }
