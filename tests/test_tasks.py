"""
Task lifecycle tests: one active task, checkpoints, phases and the
guarded end_task.
"""

import pytest

from eclipse_core.decisions import DecisionLog
from eclipse_core.memory import MemoryService
from eclipse_core.search import SearchEngine
from eclipse_core.tasks import TaskTracker


@pytest.fixture
def tracker(ctx):
    search = SearchEngine(ctx)
    return TaskTracker(ctx, search, DecisionLog(ctx))


class TestBeginTask:

    @pytest.mark.asyncio
    async def test_starts_in_understand_phase(self, tracker):
        result = await tracker.begin("Add pagination to the users endpoint")

        assert result.status == "started"
        assert result.session.phase == "understand"
        assert result.session.checkpoints == []
        assert result.session.is_active

    @pytest.mark.asyncio
    async def test_only_one_active_session(self, ctx, tracker):
        first = await tracker.begin("First task")
        second = await tracker.begin("Second task")

        assert ctx.profile_store.count_active_sessions() == 1
        assert ctx.profile_store.active_session().id == second.session.id
        assert ctx.profile_store.get_session(first.session.id).ended_at is not None
        assert second.previous_session_id == first.session.id

    @pytest.mark.asyncio
    async def test_surfaces_related_memories_and_decisions(self, ctx, tracker):
        await MemoryService(ctx).save("semantic", "api", "Pagination style", "Use cursor pagination for list endpoints")
        DecisionLog(ctx).log("Cursor pagination", "users endpoint pagination", "stable under inserts")

        result = await tracker.begin("Add pagination to the users endpoint")

        assert [hit.memory.title for hit in result.memories][:1] == ["Pagination style"]
        assert [d.decision for d in result.decisions] == ["Cursor pagination"]

    @pytest.mark.asyncio
    async def test_advisory_search_is_capped(self, ctx, tracker):
        service = MemoryService(ctx)
        for i in range(5):
            await service.save("semantic", "c", f"Note {i}", "pagination detail")

        result = await tracker.begin("pagination")
        assert len(result.memories) == 3


class TestCheckpoints:

    def test_no_session(self, tracker):
        assert tracker.checkpoint("did a thing").status == "no_session"

    @pytest.mark.asyncio
    async def test_appends_with_current_phase(self, ctx, tracker):
        await tracker.begin("Task")
        tracker.checkpoint("Read the handler", "low")
        tracker.checkpoint("Found the bug", "high")

        session = ctx.profile_store.active_session()
        assert [cp.note for cp in session.checkpoints] == ["Read the handler", "Found the bug"]
        assert [cp.importance for cp in session.checkpoints] == ["low", "high"]
        assert all(cp.phase == "understand" for cp in session.checkpoints)
        assert all(cp.timestamp for cp in session.checkpoints)


class TestPhases:

    @pytest.mark.asyncio
    async def test_update_records_phase_left(self, ctx, tracker):
        await tracker.begin("Task")
        result = tracker.update_phase("plan", note="Understood the handler")

        assert result.session.phase == "plan"
        session = ctx.profile_store.active_session()
        assert session.phase == "plan"
        assert session.checkpoints[-1].phase == "understand"
        assert session.checkpoints[-1].note == "Understood the handler"

    @pytest.mark.asyncio
    async def test_blockers_are_flagged(self, tracker):
        await tracker.begin("Task")
        result = tracker.update_phase("execute", blockers="No staging access")

        assert result.warnings
        assert result.session.checkpoints[-1].importance == "high"

    def test_update_without_session(self, tracker):
        assert tracker.update_phase("plan").status == "no_session"

    @pytest.mark.asyncio
    async def test_resume(self, tracker):
        assert tracker.resume().status == "no_session"

        await tracker.begin("Task")
        tracker.checkpoint("step one")
        result = tracker.resume()

        assert result.status == "resumed"
        assert len(result.session.checkpoints) == 1


class TestGuardedCompletion:

    @pytest.mark.asyncio
    async def test_not_fulfilled_never_ends(self, ctx, tracker):
        started = await tracker.begin("Task")
        tracker.checkpoint("half done")

        result = tracker.end("Half done", fulfilled=False, verified=False, remaining_work="Write tests")

        assert result.status == "blocked"
        assert result.remaining_work == "Write tests"
        assert ctx.profile_store.get_session(started.session.id).ended_at is None

    @pytest.mark.asyncio
    async def test_no_checkpoints_warns_and_keeps_session(self, ctx, tracker):
        started = await tracker.begin("Task")

        result = tracker.end("Done", fulfilled=True, verified=True)

        assert result.status == "warning"
        assert ctx.profile_store.get_session(started.session.id).ended_at is None

    @pytest.mark.asyncio
    async def test_fulfilled_with_checkpoint_ends(self, ctx, tracker):
        started = await tracker.begin("Task")
        tracker.checkpoint("Implemented it")

        result = tracker.end("Implemented and tested", fulfilled=True, verified=True)

        assert result.status == "complete"
        assert result.warnings == []
        ended = ctx.profile_store.get_session(started.session.id)
        assert ended.ended_at is not None
        assert ended.outcome == "Implemented and tested"
        assert [cp.note for cp in result.session.checkpoints] == ["Implemented it"]

    @pytest.mark.asyncio
    async def test_unverified_completes_with_warning(self, ctx, tracker):
        await tracker.begin("Task")
        tracker.checkpoint("Implemented it")

        result = tracker.end("Implemented", fulfilled=True, verified=False)

        assert result.status == "complete"
        assert result.warnings
        assert ctx.profile_store.active_session() is None

    def test_end_without_session(self, tracker):
        assert tracker.end("x", fulfilled=True, verified=True).status == "no_session"
