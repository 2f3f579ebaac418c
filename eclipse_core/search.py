"""
Semantic Search - Finding the right memory for a question.

Hybrid relevance score per memory:

    score = (0.7 × semantic + 0.3 × keyword_boost + access_boost) × decay

    semantic      = dot(query_vector, memory_vector)      (0 without a vector)
    keyword_boost = min(0.05 × matched_query_terms, 0.2)
    access_boost  = min(0.01 × access_count, 0.1)
    decay         = max(0.5, 1 − days/60)   never accessed
                    max(0.8, 1 − days/180)  accessed at least once

Pure vector similarity keeps stale-but-related memories on top forever.
The decay term pushes down what nobody has used lately, without deleting it.

If there is no query vector (model not loaded / degraded) we skip all
that and do a plain substring search.

Every returned memory counts as accessed (access_count + 1).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import numpy as np

from eclipse_core.context import CoreContext
from eclipse_core.keywords import count_matches, query_terms
from eclipse_core.models import Memory, Scope, days_between, parse_timestamp, utc_now

logger = logging.getLogger("eclipse_core.search")

SEMANTIC_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
KEYWORD_STEP = 0.05
KEYWORD_CAP = 0.2
ACCESS_STEP = 0.01
ACCESS_CAP = 0.1


@dataclass
class ScoreBreakdown:
    semantic: float
    keyword_boost: float
    access_boost: float
    decay: float
    score: float
    matched_terms: int = 0


@dataclass
class SearchHit:
    memory: Memory
    score: float
    breakdown: Optional[ScoreBreakdown] = None

    def to_dict(self) -> dict:
        data = self.memory.to_dict()
        data["score"] = round(self.score, 4)
        return data


@dataclass
class SearchResult:
    hits: list = field(default_factory=list)
    mode: str = "semantic"    # or "lexical"

    def __len__(self):
        return len(self.hits)

    @property
    def memories(self) -> list[Memory]:
        return [hit.memory for hit in self.hits]


def decay_factor(access_count: int, days_since_access: float) -> float:
    """Temporal decay. Never-accessed memories fade faster and further."""
    if access_count == 0:
        return max(0.5, 1 - days_since_access / 60)
    return max(0.8, 1 - days_since_access / 180)


def score_memory(
    semantic: float,
    matched_terms: int,
    access_count: int,
    days_since_access: float,
) -> ScoreBreakdown:
    """The hybrid relevance formula (pure, no I/O)."""
    keyword_boost = min(KEYWORD_STEP * matched_terms, KEYWORD_CAP)
    access_boost = min(ACCESS_STEP * access_count, ACCESS_CAP)
    decay = decay_factor(access_count, days_since_access)
    score = (SEMANTIC_WEIGHT * semantic + KEYWORD_WEIGHT * keyword_boost + access_boost) * decay
    return ScoreBreakdown(
        semantic=semantic,
        keyword_boost=keyword_boost,
        access_boost=access_boost,
        decay=decay,
        score=score,
        matched_terms=matched_terms,
    )


class SearchEngine:
    """Ranks memories across the profile and global stores.

    Usage:
        engine = SearchEngine(ctx)
        result = await engine.search("how do we version routes?", scope="all")
        for hit in result.hits:
            print(hit.memory.title, hit.score)
    """

    def __init__(self, ctx: CoreContext):
        self.ctx = ctx

    async def search(
        self,
        query: str,
        scope: str = Scope.ALL.value,
        kinds: Optional[list[str]] = None,
        limit: int = 5,
        now: Optional[datetime] = None,
    ) -> SearchResult:
        stores = self.ctx.stores_for(scope)
        query_vector = await self.ctx.embedder.embed(query)

        if query_vector is None:
            result = self._lexical(query, stores, kinds, limit)
        else:
            result = self._ranked(query, query_vector, stores, kinds, limit, now or utc_now())

        self._record_access(result)
        return result

    def _lexical(self, query, stores, kinds, limit) -> SearchResult:
        memories = []
        for store in stores:
            memories.extend(store.search_substring(query, kinds=kinds, limit=limit))

        memories.sort(
            key=lambda m: (m.access_count, m.last_accessed_at or ""),
            reverse=True,
        )
        hits = [SearchHit(memory=m, score=0.0) for m in memories[:limit]]
        logger.debug(f"Lexical search for '{query}' found {len(hits)} memories")
        return SearchResult(hits=hits, mode="lexical")

    def _ranked(self, query, query_vector: np.ndarray, stores, kinds, limit, now) -> SearchResult:
        terms = query_terms(query)
        hits = []

        for store in stores:
            for entry in self.ctx.cache.get_or_build(store):
                memory = entry.memory
                if kinds and memory.kind not in kinds:
                    continue

                semantic = 0.0
                if entry.vector is not None and entry.vector.shape == query_vector.shape:
                    semantic = float(np.dot(query_vector, entry.vector))

                last_access = parse_timestamp(memory.last_accessed_at or memory.created_at)
                breakdown = score_memory(
                    semantic=semantic,
                    matched_terms=count_matches(terms, memory.searchable_text()),
                    access_count=memory.access_count,
                    days_since_access=days_between(last_access, now),
                )
                hits.append(SearchHit(memory=memory, score=breakdown.score, breakdown=breakdown))

        hits.sort(key=lambda h: h.score, reverse=True)
        return SearchResult(hits=hits[:limit], mode="semantic")

    def _record_access(self, result: SearchResult) -> None:
        by_scope: dict[str, list[str]] = {}
        for hit in result.hits:
            by_scope.setdefault(hit.memory.scope, []).append(hit.memory.id)

        for scope, ids in by_scope.items():
            self.ctx.stores_for(scope)[0].touch(ids)

        # Lexical hits aren't cache entries, so keep the returned copies in step
        if result.mode == "lexical":
            for hit in result.hits:
                hit.memory.access_count += 1
