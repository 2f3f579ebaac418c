"""
Search tests: ranking, scope isolation, kind filter, monotonic access,
lexical fallback when the model is unavailable.
"""

import pytest

from eclipse_core.memory import MemoryService
from eclipse_core.search import SearchEngine


@pytest.fixture
def service(ctx):
    return MemoryService(ctx)


@pytest.fixture
def engine(ctx):
    return SearchEngine(ctx)


async def save_all(service, memories, scope="profile"):
    return [await service.save(scope=scope, **m) for m in memories]


class TestRanking:

    @pytest.mark.asyncio
    async def test_best_match_first(self, service, engine, sample_memories):
        await save_all(service, sample_memories)

        result = await engine.search("database migrations deploy checklist")

        assert result.mode == "semantic"
        assert result.memories[0].title == "Deploy checklist"

    @pytest.mark.asyncio
    async def test_scores_are_descending(self, service, engine, sample_memories):
        await save_all(service, sample_memories)

        result = await engine.search("integration tests database", limit=4)
        scores = [hit.score for hit in result.hits]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_limit(self, service, engine, sample_memories):
        await save_all(service, sample_memories)
        result = await engine.search("tests", limit=2)
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_kind_filter(self, service, engine, sample_memories):
        await save_all(service, sample_memories)

        result = await engine.search("tests database", kinds=["episodic", "skill"], limit=10)
        assert {m.kind for m in result.memories} <= {"episodic", "skill"}
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_stale_unused_memory_sinks(self, ctx, service, engine, backdate):
        fresh = await service.save("semantic", "c", "Cache policy", "Cache pages for five minutes")
        stale = await service.save("semantic", "c", "Cache policy", "Cache pages for five minutes")
        backdate(stale, 120, column="last_accessed")

        result = await engine.search("cache policy pages")
        assert [m.id for m in result.memories[:2]] == [fresh.id, stale.id]


class TestAccessCounting:

    @pytest.mark.asyncio
    async def test_every_hit_counts_once(self, ctx, service, engine, sample_memories):
        saved = await save_all(service, sample_memories)

        for _ in range(3):
            await engine.search("deploy checklist", limit=1)

        counts = {m.title: ctx.profile_store.get_memory(m.id).access_count for m in saved}
        assert counts["Deploy checklist"] == 3
        assert sum(counts.values()) == 3

    @pytest.mark.asyncio
    async def test_returned_memories_show_new_count(self, service, engine):
        await service.save("semantic", "c", "Deploy", "Run migrations")
        result = await engine.search("deploy")
        assert result.memories[0].access_count == 1

    @pytest.mark.asyncio
    async def test_last_accessed_moves_forward(self, ctx, service, engine):
        memory = await service.save("semantic", "c", "Deploy", "Run migrations")
        await engine.search("deploy")
        after = ctx.profile_store.get_memory(memory.id)
        assert after.last_accessed_at >= memory.last_accessed_at


class TestScopes:

    @pytest.mark.asyncio
    async def test_profile_memory_not_in_global_search(self, service, engine):
        await service.save("semantic", "c", "Local convention", "Tabs in this repo", scope="profile")
        await service.save("semantic", "c", "Global convention", "Commit messages in English", scope="global")

        global_only = await engine.search("convention", scope="global", limit=10)
        profile_only = await engine.search("convention", scope="profile", limit=10)

        assert [m.title for m in global_only.memories] == ["Global convention"]
        assert [m.title for m in profile_only.memories] == ["Local convention"]

    @pytest.mark.asyncio
    async def test_all_scope_searches_both(self, service, engine):
        await service.save("semantic", "c", "Local convention", "Tabs", scope="profile")
        await service.save("semantic", "c", "Global convention", "English", scope="global")

        result = await engine.search("convention", scope="all", limit=10)
        assert {m.scope for m in result.memories} == {"profile", "global"}

    @pytest.mark.asyncio
    async def test_global_profile_shares_one_store(self, temp_data_dir, clean_env):
        from conftest import FakeLoader
        from eclipse_core.config import load_settings
        from eclipse_core.context import CoreContext

        plain = temp_data_dir / "scratch"
        plain.mkdir()
        ctx = CoreContext.create(
            load_settings(data_dir=temp_data_dir / "data", working_dir=plain),
            loader=FakeLoader(),
        )
        try:
            assert ctx.profile == "global"
            assert ctx.all_stores() == [ctx.global_store]

            await MemoryService(ctx).save("semantic", "c", "Shared", "One store")
            result = await SearchEngine(ctx).search("shared", scope="all")
            assert len(result) == 1
        finally:
            ctx.close()


class TestLexicalFallback:

    @pytest.mark.asyncio
    async def test_degraded_model_still_finds_by_substring(self, degraded_ctx):
        service = MemoryService(degraded_ctx)
        memory = await service.save("semantic", "c", "Deploy checklist", "Run migrations")
        assert not memory.has_embedding

        result = await SearchEngine(degraded_ctx).search("migrations")

        assert result.mode == "lexical"
        assert [m.id for m in result.memories] == [memory.id]
        assert degraded_ctx.profile_store.get_memory(memory.id).access_count == 1

    @pytest.mark.asyncio
    async def test_lexical_orders_by_access_count(self, degraded_ctx):
        service = MemoryService(degraded_ctx)
        engine = SearchEngine(degraded_ctx)
        first = await service.save("semantic", "c", "deploy one", "x")
        second = await service.save("semantic", "c", "deploy two", "x")
        degraded_ctx.profile_store.touch([second.id])

        result = await engine.search("deploy")
        assert [m.id for m in result.memories] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_lexical_respects_scope(self, degraded_ctx):
        service = MemoryService(degraded_ctx)
        await service.save("semantic", "c", "deploy local", "x", scope="profile")
        await service.save("semantic", "c", "deploy shared", "x", scope="global")

        result = await SearchEngine(degraded_ctx).search("deploy", scope="global")
        assert [m.title for m in result.memories] == ["deploy shared"]
