"""
Decision Log - Why did we do it this way?

Append-only record of technical choices, stored in the profile's
database and tied to the active task when there is one. Decisions are
few, so plain substring search is enough (no vectors).
"""

import logging
from typing import Optional

from eclipse_core.context import CoreContext
from eclipse_core.keywords import significant_words
from eclipse_core.models import Decision

logger = logging.getLogger("eclipse_core.decisions")


class DecisionLog:
    def __init__(self, ctx: CoreContext):
        self.ctx = ctx

    @property
    def store(self):
        return self.ctx.profile_store

    def log(
        self,
        decision: str,
        context: str,
        rationale: str,
        alternatives: Optional[str] = None,
    ) -> Decision:
        session = self.store.active_session()
        record = self.store.insert_decision(
            decision=decision,
            context=context,
            rationale=rationale,
            alternatives=alternatives,
            session_id=session.id if session else None,
        )
        logger.debug(f"Logged decision {record.id} (session: {record.session_id})")
        return record

    def search(self, query: str, limit: int = 5) -> list[Decision]:
        """Decisions whose text or context contains the query, newest first."""
        query = (query or "").strip()
        if not query:
            return []
        return self.store.search_decisions([query], limit=limit)

    def related(self, text: str, limit: int = 3) -> list[Decision]:
        """Decisions mentioning any significant word of a free text."""
        return self.store.search_decisions(significant_words(text), limit=limit)
