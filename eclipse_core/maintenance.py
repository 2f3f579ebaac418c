"""
Maintenance - Keeping the memory set tidy.

- find_similar: nearest neighbours of one memory (cosine similarity)
- merge:        delete near-duplicates of a memory, folding their tags
                and access counts into it
- prune:        delete memories nobody ever used, older than N days
- reembed:      give vectors to memories saved while the model was down

Everything is a dry run unless the caller explicitly says otherwise.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from eclipse_core.context import CoreContext
from eclipse_core.embeddings import cosine_similarity, embedding_text, encode_vector
from eclipse_core.errors import MemoryNotFound
from eclipse_core.memory import MemoryService
from eclipse_core.models import Memory, Scope, to_timestamp, utc_now

logger = logging.getLogger("eclipse_core.maintenance")

DEFAULT_MERGE_THRESHOLD = 0.9
DEFAULT_PRUNE_DAYS = 90


@dataclass
class SimilarMemory:
    memory: Memory
    similarity: float


@dataclass
class MaintenanceReport:
    op: str
    dry_run: bool
    target: Optional[Memory] = None
    candidates: list = field(default_factory=list)   # SimilarMemory or Memory
    applied: int = 0
    threshold: Optional[float] = None


class MaintenanceEngine:
    def __init__(self, ctx: CoreContext, memories: MemoryService):
        self.ctx = ctx
        self.memories = memories

    def _entries(self):
        for store in self.ctx.all_stores():
            yield from self.ctx.cache.get_or_build(store)

    def _ranked_neighbours(self, ref: str) -> tuple[Memory, list[SimilarMemory]]:
        memory, _ = self.ctx.locate(ref)

        entries = list(self._entries())
        target = next((e for e in entries if e.memory.id == memory.id), None)
        if target is None:
            raise MemoryNotFound(ref)

        neighbours = [
            SimilarMemory(memory=e.memory, similarity=cosine_similarity(target.vector, e.vector))
            for e in entries
            if e.memory.id != target.memory.id
        ]
        neighbours.sort(key=lambda n: n.similarity, reverse=True)
        return target.memory, neighbours

    def find_similar(self, ref: str, limit: int = 5) -> MaintenanceReport:
        target, neighbours = self._ranked_neighbours(ref)
        return MaintenanceReport(
            op="find_similar",
            dry_run=True,
            target=target,
            candidates=neighbours[:limit],
        )

    def merge(
        self,
        ref: str,
        dry_run: bool = True,
        threshold: float = DEFAULT_MERGE_THRESHOLD,
    ) -> MaintenanceReport:
        """Absorb every memory more similar than threshold into the target.

        The duplicates' content is dropped; their tags and access counts
        are added to the target so usage history isn't lost.
        """
        target, neighbours = self._ranked_neighbours(ref)
        # Only the target's own store is merged into
        duplicates = [
            n for n in neighbours
            if n.similarity > threshold and n.memory.scope == target.scope
        ]
        report = MaintenanceReport(
            op="merge",
            dry_run=dry_run,
            target=target,
            candidates=duplicates,
            threshold=threshold,
        )
        if dry_run or not duplicates:
            return report

        tags = list(target.tags)
        for duplicate in duplicates:
            for tag in duplicate.memory.tags:
                if tag not in tags:
                    tags.append(tag)
        access_count = target.access_count + sum(d.memory.access_count for d in duplicates)

        report.applied = self.memories.delete([d.memory for d in duplicates])
        _, store = self.ctx.locate(target.id)
        store.update_memory(target.id, tags=tags, access_count=access_count)
        report.target = store.get_memory(target.id)

        logger.info(f"Merged {report.applied} duplicates into {target.short_id}")
        return report

    def prune(
        self,
        days_threshold: int = DEFAULT_PRUNE_DAYS,
        dry_run: bool = True,
        scope: str = Scope.ALL.value,
    ) -> MaintenanceReport:
        """Never-accessed memories older than days_threshold."""
        cutoff = to_timestamp(utc_now() - timedelta(days=days_threshold))
        candidates = []
        for store in self.ctx.stores_for(scope):
            candidates.extend(store.prune_candidates(cutoff))

        # Guard: prune never touches a memory that has been used
        candidates = [m for m in candidates if m.access_count == 0]

        report = MaintenanceReport(op="prune", dry_run=dry_run, candidates=candidates)
        if not dry_run and candidates:
            report.applied = self.memories.delete(candidates)
            logger.info(f"Pruned {report.applied} memories unused for {days_threshold}+ days")
        return report

    async def reembed(self, dry_run: bool = True, scope: str = Scope.ALL.value) -> MaintenanceReport:
        """Generate vectors for memories that don't have one yet."""
        missing = []
        stores = {}
        for store in self.ctx.stores_for(scope):
            for memory in store.memories_without_embedding():
                missing.append(memory)
                stores[memory.id] = store

        report = MaintenanceReport(op="reembed", dry_run=dry_run, candidates=missing)
        if dry_run:
            return report

        for memory in missing:
            vector = await self.ctx.embedder.embed(embedding_text(memory.title, memory.content))
            if vector is None:
                logger.warning("Embedding model unavailable, stopping re-embed")
                break
            stores[memory.id].update_memory(memory.id, embedding=encode_vector(vector))
            report.applied += 1

        logger.info(f"Re-embedded {report.applied}/{len(missing)} memories")
        return report
