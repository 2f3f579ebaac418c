"""
Task Tracker - One unit of agent work, start to finish.

    begin_task → checkpoint … → update_task(phase) … → end_task

Phases: understand → plan → execute → verify.

At most one task (session) is active per profile: starting a new one
ends the old one. end_task is guarded: the caller has to assert that the
request was fulfilled, and a task without a single checkpoint isn't
closed (no checkpoints usually means no work happened).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from eclipse_core.context import CoreContext
from eclipse_core.decisions import DecisionLog
from eclipse_core.models import Checkpoint, Importance, Scope, Session, to_timestamp, utc_now
from eclipse_core.search import SearchEngine

logger = logging.getLogger("eclipse_core.tasks")

ADVISORY_LIMIT = 3


@dataclass
class TaskResult:
    status: str                         # started, checkpoint, phase_changed, resumed,
                                        # no_session, blocked, warning, complete
    session: Optional[Session] = None
    warnings: list = field(default_factory=list)
    memories: list = field(default_factory=list)    # advisory SearchHits
    decisions: list = field(default_factory=list)   # advisory Decisions
    remaining_work: Optional[str] = None
    previous_session_id: Optional[str] = None


class TaskTracker:
    def __init__(self, ctx: CoreContext, search: SearchEngine, decisions: DecisionLog):
        self.ctx = ctx
        self.search = search
        self.decisions = decisions

    @property
    def store(self):
        return self.ctx.profile_store

    def active(self) -> Optional[Session]:
        return self.store.active_session()

    async def begin(self, task_summary: str) -> TaskResult:
        """Start a task and pull up what we already know about it."""
        previous_id = None
        try:
            previous = self.store.active_session()
            if previous is not None:
                previous_id = previous.id
            # Sweep every open row so a stray one can't survive
            ended = self.store.end_all_active_sessions()
            if ended:
                logger.info(f"Ended {ended} active session(s) before starting a new task")
        except Exception as e:
            logger.warning(f"Could not end previous session: {e}")

        session = self.store.insert_session(task_summary)
        result = TaskResult(status="started", session=session, previous_session_id=previous_id)

        search_result = await self.search.search(task_summary, scope=Scope.ALL.value, limit=ADVISORY_LIMIT)
        result.memories = search_result.hits
        result.decisions = self.decisions.related(task_summary, limit=ADVISORY_LIMIT)
        return result

    def checkpoint(self, note: str, importance: str = Importance.MEDIUM.value) -> TaskResult:
        session = self.active()
        if session is None:
            return TaskResult(status="no_session")

        session.checkpoints.append(Checkpoint(
            phase=session.phase,
            timestamp=to_timestamp(utc_now()),
            note=note,
            importance=importance,
        ))
        self.store.save_session_progress(session)
        return TaskResult(status="checkpoint", session=session)

    def update_phase(self, phase: str, note: Optional[str] = None, blockers: Optional[str] = None) -> TaskResult:
        """Move to another phase, recording a checkpoint for the one we leave."""
        session = self.active()
        if session is None:
            return TaskResult(status="no_session")

        summary = note or f"Moved from {session.phase} to {phase}"
        if blockers:
            summary += f" (blockers: {blockers})"

        session.checkpoints.append(Checkpoint(
            phase=session.phase,
            timestamp=to_timestamp(utc_now()),
            note=summary,
            importance=Importance.HIGH.value if blockers else Importance.MEDIUM.value,
        ))
        session.phase = phase
        self.store.save_session_progress(session)

        result = TaskResult(status="phase_changed", session=session)
        if blockers:
            result.warnings.append(f"Blockers noted: {blockers}")
        return result

    def resume(self) -> TaskResult:
        session = self.active()
        if session is None:
            return TaskResult(status="no_session")
        return TaskResult(status="resumed", session=session)

    def end(
        self,
        summary: str,
        fulfilled: bool,
        verified: bool,
        remaining_work: Optional[str] = None,
    ) -> TaskResult:
        """Close the active task, if it really is done."""
        session = self.active()
        if session is None:
            return TaskResult(status="no_session")

        if not fulfilled:
            return TaskResult(
                status="blocked",
                session=session,
                remaining_work=remaining_work or "The original request is not fulfilled yet.",
            )

        if not session.checkpoints:
            return TaskResult(
                status="warning",
                session=session,
                warnings=["No checkpoints were recorded for this task. "
                          "Log what was done with checkpoint before ending it."],
            )

        self.store.end_session(session.id, outcome=summary)
        ended = self.store.get_session(session.id)

        result = TaskResult(status="complete", session=ended)
        if not verified:
            result.warnings.append("The work was not verified. Say so when reporting back.")
        logger.info(f"Task {session.id} ended with {len(session.checkpoints)} checkpoints")
        return result
