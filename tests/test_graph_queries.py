"""
Knowledge graph tests: create / list / delete links, short ids,
cross-store links and cleanup when memories go away.
"""

import pytest

from eclipse_core.errors import InvalidOperation, MemoryNotFound
from eclipse_core.graph import KnowledgeGraph
from eclipse_core.memory import MemoryService


@pytest.fixture
def graph(ctx):
    return KnowledgeGraph(ctx)


@pytest.fixture
def service(ctx):
    return MemoryService(ctx)


class TestCreate:

    @pytest.mark.asyncio
    async def test_incoming_edge_is_listed(self, graph, service):
        a = await service.save("procedural", "deploy", "Deploy checklist", "Run migrations first")
        b = await service.save("semantic", "db", "Migration tool", "We use alembic")

        graph.create(a.id, b.id, "depends_on")
        listing = graph.list(b.id)

        assert listing.outgoing == []
        assert len(listing.incoming) == 1
        link, title = listing.incoming[0]
        assert link.source_id == a.id
        assert link.relationship == "depends_on"
        assert title == "Deploy checklist"
        assert "←depends_on" in listing.ascii

    @pytest.mark.asyncio
    async def test_short_ids_resolve(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        b = await service.save("semantic", "c", "B", "y")

        link = graph.create(a.short_id, b.short_id, "related_to")
        assert (link.source_id, link.target_id) == (a.id, b.id)

    @pytest.mark.asyncio
    async def test_relinking_replaces_relationship(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        b = await service.save("semantic", "c", "B", "y")

        graph.create(a.id, b.id, "related_to")
        graph.create(a.id, b.id, "supersedes")

        listing = graph.list(a.id)
        assert [link.relationship for link, _ in listing.outgoing] == ["supersedes"]

    @pytest.mark.asyncio
    async def test_unknown_endpoint(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        with pytest.raises(MemoryNotFound):
            graph.create(a.id, "ffffffff", "related_to")

    @pytest.mark.asyncio
    async def test_self_link_rejected(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        with pytest.raises(InvalidOperation):
            graph.create(a.id, a.id, "related_to")

    @pytest.mark.asyncio
    async def test_unknown_relationship_rejected(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        b = await service.save("semantic", "c", "B", "y")
        with pytest.raises(InvalidOperation):
            graph.create(a.id, b.id, "hates")

    @pytest.mark.asyncio
    async def test_link_across_stores(self, graph, service):
        local = await service.save("semantic", "c", "Local rule", "x", scope="profile")
        shared = await service.save("semantic", "c", "Shared rule", "y", scope="global")

        graph.create(local.id, shared.id, "example_of")

        listing = graph.list(shared.id)
        assert [link.source_id for link, _ in listing.incoming] == [local.id]


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_existing(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        b = await service.save("semantic", "c", "B", "y")
        graph.create(a.id, b.id, "related_to")

        assert graph.delete(a.id, b.id) is True
        assert graph.list(a.id).outgoing == []

    @pytest.mark.asyncio
    async def test_delete_missing_edge(self, graph, service):
        a = await service.save("semantic", "c", "A", "x")
        b = await service.save("semantic", "c", "B", "y")
        assert graph.delete(a.id, b.id) is False

    @pytest.mark.asyncio
    async def test_forgetting_a_memory_removes_its_links(self, graph, service):
        local = await service.save("semantic", "c", "Local rule", "x", scope="profile")
        shared = await service.save("semantic", "c", "Shared rule", "y", scope="global")
        graph.create(local.id, shared.id, "example_of")

        service.forget(shared.id, "obsolete")

        assert graph.list(local.id).outgoing == []
        assert graph.stats()["total_links"] == 0


class TestStats:

    @pytest.mark.asyncio
    async def test_counts_and_hubs(self, graph, service):
        hub = await service.save("semantic", "c", "Hub", "x")
        others = [await service.save("semantic", "c", f"Leaf {i}", "y") for i in range(3)]
        for other in others:
            graph.create(other.id, hub.id, "depends_on")
        graph.create(others[0].id, others[1].id, "related_to")

        stats = graph.stats()

        assert stats["total_links"] == 4
        assert stats["edge_types"] == {"depends_on": 3, "related_to": 1}
        assert stats["hubs"][0]["id"] == hub.id
        assert stats["hubs"][0]["connections"] == 3
