"""
Knowledge Graph - Typed arrows between memories.

    A --depends_on--> B     "A only makes sense if you know B"
    A --supersedes--> B     "A replaces B"
    A --example_of--> B     "A is a concrete case of B"
    A --related_to--> B     "see also"

Edges are stored in SQLite (memory_links, in the source memory's store).
For listing and stats we load them into a networkx DiGraph view. There is
one edge per ordered (source, target) pair; re-linking replaces the
relationship.
"""

import logging
from dataclasses import dataclass, field

import networkx as nx

from eclipse_core.context import CoreContext
from eclipse_core.errors import InvalidOperation
from eclipse_core.models import Memory, MemoryLink, Relationship

logger = logging.getLogger("eclipse_core.graph")

MAX_NEIGHBOURS_SHOWN = 5


@dataclass
class LinkListing:
    memory: Memory
    outgoing: list = field(default_factory=list)   # [(MemoryLink, title)]
    incoming: list = field(default_factory=list)   # [(MemoryLink, title)]
    ascii: str = ""


class KnowledgeGraph:
    def __init__(self, ctx: CoreContext):
        self.ctx = ctx

    # =========================================================================
    # EDGES
    # =========================================================================

    def create(self, source_ref: str, target_ref: str, relationship: str) -> MemoryLink:
        """Link two memories (full or short ids).

        Raises:
            MemoryNotFound: either endpoint doesn't resolve
            InvalidOperation: self-link or unknown relationship
        """
        valid = [r.value for r in Relationship]
        if relationship not in valid:
            raise InvalidOperation(f"Unknown relationship. Use one of: {', '.join(valid)}")

        source, store = self.ctx.locate(source_ref)
        target, _ = self.ctx.locate(target_ref)
        if source.id == target.id:
            raise InvalidOperation("A memory can't be linked to itself")

        link = store.upsert_link(source.id, target.id, relationship)
        logger.debug(f"Linked {source.short_id} --{relationship}--> {target.short_id}")
        return link

    def delete(self, source_ref: str, target_ref: str) -> bool:
        """Remove the edge source → target. False if there wasn't one."""
        source, store = self.ctx.locate(source_ref)
        target, _ = self.ctx.locate(target_ref)
        return store.delete_link(source.id, target.id)

    # =========================================================================
    # VIEWS
    # =========================================================================

    def build(self) -> nx.DiGraph:
        """All memories that take part in a link, as a directed graph."""
        graph = nx.DiGraph()
        for store in self.ctx.all_stores():
            for link in store.all_links():
                graph.add_edge(
                    link.source_id,
                    link.target_id,
                    relationship=link.relationship,
                    link=link,
                )
        return graph

    def _title(self, memory_id: str) -> str:
        for store in self.ctx.all_stores():
            memory = store.get_memory(memory_id)
            if memory is not None:
                return memory.title
        return "(missing)"

    def list(self, ref: str) -> LinkListing:
        """Outgoing and incoming edges of one memory."""
        memory, _ = self.ctx.locate(ref)
        graph = self.build()
        listing = LinkListing(memory=memory)

        if graph.has_node(memory.id):
            for succ in graph.successors(memory.id):
                listing.outgoing.append((graph.edges[memory.id, succ]["link"], self._title(succ)))
            for pred in graph.predecessors(memory.id):
                listing.incoming.append((graph.edges[pred, memory.id]["link"], self._title(pred)))

        listing.ascii = self.visualize(listing)
        return listing

    def visualize(self, listing: LinkListing) -> str:
        """ASCII picture of a memory's neighbourhood."""
        lines = [f"[{listing.memory.kind.upper()}] {listing.memory.short_id} {listing.memory.title}"]

        out_edges: dict[str, list] = {}
        for link, title in listing.outgoing:
            out_edges.setdefault(link.relationship, []).append((link.target_id, title))

        in_edges: dict[str, list] = {}
        for link, title in listing.incoming:
            in_edges.setdefault(link.relationship, []).append((link.source_id, title))

        if out_edges:
            lines.append("│")
        for relationship, targets in out_edges.items():
            lines.append(f"├── {relationship}:")
            shown = targets[:MAX_NEIGHBOURS_SHOWN]
            for i, (target_id, title) in enumerate(shown):
                prefix = "│   └──" if i == len(shown) - 1 else "│   ├──"
                lines.append(f"{prefix} {target_id[:8]} {title}")
            if len(targets) > MAX_NEIGHBOURS_SHOWN:
                lines.append(f"│   └── ... and {len(targets) - MAX_NEIGHBOURS_SHOWN} more")

        if in_edges:
            lines.append("│")
        for relationship, sources in in_edges.items():
            lines.append(f"└── ←{relationship}:")
            shown = sources[:MAX_NEIGHBOURS_SHOWN]
            for i, (source_id, title) in enumerate(shown):
                prefix = "    └──" if i == len(shown) - 1 else "    ├──"
                lines.append(f"{prefix} {source_id[:8]} {title}")
            if len(sources) > MAX_NEIGHBOURS_SHOWN:
                lines.append(f"    └── ... and {len(sources) - MAX_NEIGHBOURS_SHOWN} more")

        if not out_edges and not in_edges:
            lines.append("(no links)")
        return "\n".join(lines)

    def stats(self, limit: int = 5) -> dict:
        """Edge counts by relationship and the most connected memories."""
        graph = self.build()

        edge_types: dict[str, int] = {}
        for u, v in graph.edges:
            relationship = graph.edges[u, v]["relationship"]
            edge_types[relationship] = edge_types.get(relationship, 0) + 1

        hubs = [
            {
                "id": node_id,
                "title": self._title(node_id),
                "connections": graph.in_degree(node_id) + graph.out_degree(node_id),
            }
            for node_id in graph.nodes
        ]
        hubs.sort(key=lambda x: x["connections"], reverse=True)

        return {
            "total_links": graph.number_of_edges(),
            "linked_memories": graph.number_of_nodes(),
            "edge_types": edge_types,
            "hubs": hubs[:limit],
        }
