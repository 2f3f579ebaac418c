"""
Tool Dispatcher - From a named tool call to a component and back.

    dispatcher = ToolDispatcher(ctx)
    result = await dispatcher.dispatch("memory_search", {"query": "deploy"})
    result.text       # markdown for the assistant
    result.data       # the same thing, structured
    result.is_error   # flag for the transport

Nothing a component raises escapes: bad arguments, unknown ids and
unexpected failures all come back as results.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from eclipse_core.context import CoreContext, DB_FILENAME
from eclipse_core.decisions import DecisionLog
from eclipse_core.errors import InvalidOperation, MemoryNotFound
from eclipse_core.graph import KnowledgeGraph
from eclipse_core.maintenance import MaintenanceEngine, MaintenanceReport
from eclipse_core.memory import MemoryService
from eclipse_core.requests import parse_request
from eclipse_core.search import SearchEngine
from eclipse_core.tasks import TaskResult, TaskTracker

logger = logging.getLogger("eclipse_core.dispatcher")

PHASE_EMOJI = {"understand": "🔍", "plan": "📋", "execute": "⚡", "verify": "✅"}
IMPORTANCE_EMOJI = {"low": "📝", "medium": "📌", "high": "⭐"}

NO_SESSION_TEXT = "⚠️ No active task. Call begin_task first."


@dataclass
class ToolResult:
    text: str
    data: dict = field(default_factory=dict)
    is_error: bool = False


def _preview(text: str, length: int = 100) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def _format_validation_error(name: str, error: ValidationError) -> str:
    lines = [f"❌ Invalid arguments for {name}:"]
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "(arguments)"
        lines.append(f"- {location}: {err['msg']}")
    return "\n".join(lines)


class ToolDispatcher:
    def __init__(self, ctx: CoreContext):
        self.ctx = ctx
        self.memories = MemoryService(ctx)
        self.search = SearchEngine(ctx)
        self.graph = KnowledgeGraph(ctx)
        self.decisions = DecisionLog(ctx)
        self.tasks = TaskTracker(ctx, self.search, self.decisions)
        self.maintenance = MaintenanceEngine(ctx, self.memories)

        self._handlers = {
            "begin_task": self._begin_task,
            "end_task": self._end_task,
            "checkpoint": self._checkpoint,
            "update_task": self._update_task,
            "task_resume": self._task_resume,
            "memory_save": self._memory_save,
            "memory_search": self._memory_search,
            "memory_update": self._memory_update,
            "memory_forget": self._memory_forget,
            "memory_link": self._memory_link,
            "memory_stats": self._memory_stats,
            "memory_maintain": self._memory_maintain,
            "decision_log": self._decision_log,
            "decision_search": self._decision_search,
            "profile_info": self._profile_info,
        }

    async def dispatch(self, name: str, arguments: Optional[dict] = None) -> ToolResult:
        """Validate, route, render. Never raises."""
        self.ctx.usage.record(name)

        try:
            request = parse_request(name, arguments)
        except ValidationError as e:
            return ToolResult(
                text=_format_validation_error(name, e),
                is_error=True,
                data={
                    "status": "invalid_arguments",
                    "errors": e.errors(include_url=False, include_context=False),
                },
            )
        except InvalidOperation as e:
            return ToolResult(text=f"❌ {e}", is_error=True, data={"status": "invalid"})

        try:
            return await self._handlers[name](request)
        except MemoryNotFound as e:
            return ToolResult(text=f"🔍 {e}", data={"status": "not_found", "ref": e.ref})
        except InvalidOperation as e:
            return ToolResult(text=f"❌ {e}", is_error=True, data={"status": "invalid"})
        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return ToolResult(
                text=f"Error in {name}: {type(e).__name__}: {e}",
                is_error=True,
                data={"status": "error", "error": str(e)},
            )

    # =========================================================================
    # TASKS
    # =========================================================================

    @staticmethod
    def _no_session() -> ToolResult:
        return ToolResult(text=NO_SESSION_TEXT, data={"status": "no_session"})

    @staticmethod
    def _task_data(result: TaskResult) -> dict:
        return {
            "status": result.status,
            "session": result.session.to_dict() if result.session else None,
            "warnings": result.warnings,
        }

    async def _begin_task(self, req) -> ToolResult:
        result = await self.tasks.begin(req.task_summary)
        session = result.session

        lines = [
            "🚀 Task started\n",
            f"**Session ID**: {session.id}",
            f"**Task**: {session.task_summary}",
            f"**Current Phase**: {session.phase}",
        ]
        if result.previous_session_id:
            lines.append(f"\n(Previous task {result.previous_session_id} was ended.)")

        if result.memories:
            lines.append("\n### Related memories")
            for hit in result.memories:
                m = hit.memory
                lines.append(f"- `{m.short_id}` **{m.title}** [{m.kind}, {m.scope}]: {_preview(m.content)}")
        if result.decisions:
            lines.append("\n### Related decisions")
            for d in result.decisions:
                lines.append(f"- {d.decision} ({d.created_at[:10]})")

        lines.append("\nRemember the workflow: understand → plan → execute → verify")

        data = self._task_data(result)
        data["memories"] = [hit.to_dict() for hit in result.memories]
        data["decisions"] = [d.to_dict() for d in result.decisions]
        return ToolResult(text="\n".join(lines), data=data)

    async def _end_task(self, req) -> ToolResult:
        result = self.tasks.end(req.summary, req.fulfilled, req.verified, req.remaining_work)
        data = self._task_data(result)

        if result.status == "no_session":
            return self._no_session()

        if result.status == "blocked":
            data["remaining_work"] = result.remaining_work
            return ToolResult(
                text=(
                    "❌ DO NOT STOP - CONTINUE WORKING\n\n"
                    f"**Remaining work**: {result.remaining_work}\n\n"
                    "Finish the original request, then call end_task again."
                ),
                data=data,
            )

        if result.status == "warning":
            return ToolResult(text="⚠️ " + " ".join(result.warnings), data=data)

        session = result.session
        lines = [
            "✅ Task complete\n",
            f"**Task**: {session.task_summary}",
            f"**Outcome**: {session.outcome}",
            "\n### Work log",
        ]
        for cp in session.checkpoints:
            lines.append(f"- [{cp.phase}] {IMPORTANCE_EMOJI.get(cp.importance, '📌')} {cp.note}")
        for warning in result.warnings:
            lines.append(f"\n⚠️ {warning}")
        return ToolResult(text="\n".join(lines), data=data)

    async def _checkpoint(self, req) -> ToolResult:
        result = self.tasks.checkpoint(req.note, req.importance)
        if result.status == "no_session":
            return self._no_session()

        session = result.session
        data = self._task_data(result)
        data["checkpoint_count"] = len(session.checkpoints)
        return ToolResult(
            text=(
                f"{IMPORTANCE_EMOJI[req.importance]} Checkpoint recorded\n\n"
                f"**Phase**: {session.phase}\n**Note**: {req.note}\n"
                f"**Total checkpoints**: {len(session.checkpoints)}"
            ),
            data=data,
        )

    async def _update_task(self, req) -> ToolResult:
        result = self.tasks.update_phase(req.phase, req.note, req.blockers)
        if result.status == "no_session":
            return self._no_session()

        session = result.session
        text = (
            f"{PHASE_EMOJI[session.phase]} Transitioned to: **{session.phase}**\n\n"
            f"**Total checkpoints**: {len(session.checkpoints)}"
        )
        for warning in result.warnings:
            text += f"\n\n⚠️ {warning}"
        data = self._task_data(result)
        data["checkpoint_count"] = len(session.checkpoints)
        return ToolResult(text=text, data=data)

    async def _task_resume(self, req) -> ToolResult:
        result = self.tasks.resume()
        if result.status == "no_session":
            return self._no_session()

        session = result.session
        lines = [
            "📂 Resuming task\n",
            f"**Session ID**: {session.id}",
            f"**Task**: {session.task_summary}",
            f"**Phase**: {PHASE_EMOJI.get(session.phase, '')} {session.phase}",
            f"**Started**: {session.started_at}",
        ]
        if session.checkpoints:
            lines.append("\n### Checkpoints")
            for cp in session.checkpoints:
                lines.append(f"- [{cp.phase}] {IMPORTANCE_EMOJI.get(cp.importance, '📌')} {cp.note}")
        else:
            lines.append("\nNo checkpoints yet.")
        return ToolResult(text="\n".join(lines), data=self._task_data(result))

    # =========================================================================
    # MEMORY
    # =========================================================================

    async def _memory_save(self, req) -> ToolResult:
        memory = await self.memories.save(
            kind=req.kind,
            category=req.category,
            title=req.title,
            content=req.content,
            tags=req.tags,
            confidence=req.confidence,
            scope=req.scope,
        )
        note = "" if memory.has_embedding else "\n\n(Saved without a vector: keyword search only for now.)"
        return ToolResult(
            text=(
                f"✅ Memory saved (id: {memory.id}, short: {memory.short_id})\n\n"
                f"**{memory.title}** [{memory.kind}, {memory.scope}]\n"
                f"**Tags**: {', '.join(memory.tags) or 'none'}{note}"
            ),
            data={"status": "saved", "memory": memory.to_dict()},
        )

    async def _memory_search(self, req) -> ToolResult:
        result = await self.search.search(req.query, scope=req.scope, kinds=req.kinds, limit=req.limit)
        data = {"status": "ok", "mode": result.mode, "results": [hit.to_dict() for hit in result.hits]}

        if not result.hits:
            return ToolResult(text=f"No memories found for: {req.query}", data=data)

        lines = [f"## Memories for: {req.query}\n"]
        if result.mode == "lexical":
            lines.append("_(keyword search: embedding model unavailable)_\n")
        for i, hit in enumerate(result.hits, 1):
            m = hit.memory
            score = f" | **Score**: {hit.score:.2f}" if result.mode == "semantic" else ""
            lines.append(
                f"### {i}. {m.title}\n"
                f"`{m.short_id}` | **Kind**: {m.kind} | **Category**: {m.category} | "
                f"**Scope**: {m.scope} | **Confidence**: {m.confidence:.0%}{score}\n"
                f"**Tags**: {', '.join(m.tags) or 'none'}\n\n{m.content}\n"
            )
        return ToolResult(text="\n".join(lines), data=data)

    async def _memory_update(self, req) -> ToolResult:
        memory = await self.memories.update(req.memory_id, req.content, req.tags, req.confidence)
        return ToolResult(
            text=f"✅ Memory updated: `{memory.id}` ({memory.title})",
            data={"status": "updated", "memory": memory.to_dict()},
        )

    async def _memory_forget(self, req) -> ToolResult:
        memory = self.memories.forget(req.memory_id, req.reason)
        return ToolResult(
            text=f"🗑️ Forgot `{memory.id}` ({memory.title})\n**Reason**: {req.reason}",
            data={"status": "deleted", "memory": memory.to_dict(), "reason": req.reason},
        )

    async def _memory_link(self, req) -> ToolResult:
        if req.op == "create":
            link = self.graph.create(req.source, req.target, req.relationship)
            return ToolResult(
                text=f"🔗 Linked `{link.source_id[:8]}` --{link.relationship}--> `{link.target_id[:8]}`",
                data={"status": "linked", "link": link.to_dict()},
            )

        if req.op == "delete":
            if self.graph.delete(req.source, req.target):
                return ToolResult(text="✂️ Link removed", data={"status": "deleted"})
            return ToolResult(text="🔍 No such link", data={"status": "not_found"})

        listing = self.graph.list(req.source)
        data = {
            "status": "ok",
            "memory": listing.memory.to_dict(),
            "outgoing": [link.to_dict() for link, _ in listing.outgoing],
            "incoming": [link.to_dict() for link, _ in listing.incoming],
        }
        return ToolResult(text=f"```\n{listing.ascii}\n```", data=data)

    async def _memory_stats(self, req) -> ToolResult:
        stats = self.memories.stats(req.scope)
        graph_stats = self.graph.stats()
        embeddings = stats["embeddings"]

        lines = [
            f"## Memory stats ({stats['profile']}, scope: {stats['scope']})\n",
            f"**Total memories**: {stats['total']}",
            f"**Never accessed**: {stats['never_accessed']}",
            f"**Without vector**: {stats['without_embedding']}",
            f"**Decisions**: {stats['decisions']}",
            f"**Embedding model**: {embeddings['model']} ({embeddings['state']})",
            "\n### By kind",
        ]
        for kind, count in sorted(stats["by_kind"].items()):
            lines.append(f"- {kind}: {count}")
        if stats["top_accessed"]:
            lines.append("\n### Most accessed")
            for m in stats["top_accessed"]:
                lines.append(f"- `{m.short_id}` {m.title} ({m.access_count}×)")
        lines.append(f"\n### Knowledge graph\n**Links**: {graph_stats['total_links']}")
        for relationship, count in graph_stats["edge_types"].items():
            lines.append(f"- {relationship}: {count}")
        if graph_stats["hubs"]:
            lines.append("**Most connected**: " + ", ".join(
                f"{hub['title']} ({hub['connections']})" for hub in graph_stats["hubs"]
            ))

        data = dict(stats)
        data["status"] = "ok"
        data["top_accessed"] = [m.to_dict() for m in stats["top_accessed"]]
        data["graph"] = graph_stats
        return ToolResult(text="\n".join(lines), data=data)

    async def _memory_maintain(self, req) -> ToolResult:
        if req.op == "find_similar":
            report = self.maintenance.find_similar(req.memory_id, limit=req.limit)
        elif req.op == "merge":
            report = self.maintenance.merge(req.memory_id, dry_run=req.dry_run,
                                            threshold=req.similarity_threshold)
        elif req.op == "prune":
            report = self.maintenance.prune(req.days_threshold, dry_run=req.dry_run, scope=req.scope)
        else:
            report = await self.maintenance.reembed(dry_run=req.dry_run, scope=req.scope)
        return self._render_report(report)

    @staticmethod
    def _render_report(report: MaintenanceReport) -> ToolResult:
        mode = "🧪 DRY RUN" if report.dry_run else "🧹 APPLIED"
        lines = [f"## {report.op} ({mode})\n"]
        if report.target is not None:
            lines.append(f"**Target**: `{report.target.short_id}` {report.target.title}\n")

        candidates = []
        for candidate in report.candidates:
            memory = getattr(candidate, "memory", candidate)
            similarity = getattr(candidate, "similarity", None)
            entry = memory.to_dict()
            if similarity is not None:
                entry["similarity"] = round(similarity * 100, 1)
                lines.append(f"- `{memory.short_id}` {memory.title}: {similarity:.1%} similar")
            else:
                lines.append(f"- `{memory.short_id}` {memory.title} (created {(memory.created_at or '')[:10]})")
            candidates.append(entry)

        if not report.candidates:
            lines.append("Nothing to do.")
        elif report.op != "find_similar":
            if report.dry_run:
                lines.append(f"\n{len(report.candidates)} memories would be affected. "
                             "Call again with dry_run=false to apply.")
            else:
                lines.append(f"\n{report.applied} memories affected.")

        data = {
            "status": "ok",
            "op": report.op,
            "dry_run": report.dry_run,
            "target": report.target.to_dict() if report.target else None,
            "candidates": candidates,
            "applied": report.applied,
        }
        return ToolResult(text="\n".join(lines), data=data)

    # =========================================================================
    # DECISIONS & PROFILE
    # =========================================================================

    async def _decision_log(self, req) -> ToolResult:
        decision = self.decisions.log(req.decision, req.context, req.rationale, req.alternatives)
        session_note = f"\n**Task**: {decision.session_id}" if decision.session_id else ""
        return ToolResult(
            text=f"📝 Decision logged (id: {decision.id})\n\n**Decision**: {decision.decision}{session_note}",
            data={"status": "logged", "decision": decision.to_dict()},
        )

    async def _decision_search(self, req) -> ToolResult:
        found = self.decisions.search(req.query, limit=req.limit)
        data = {"status": "ok", "results": [d.to_dict() for d in found]}
        if not found:
            return ToolResult(text=f"No decisions found for: {req.query}", data=data)

        lines = [f"## Decisions for: {req.query}\n"]
        for d in found:
            lines.append(
                f"### {d.decision}\n**When**: {d.created_at[:10]}\n**Context**: {d.context}\n"
                f"**Rationale**: {d.rationale}"
                + (f"\n**Alternatives**: {d.alternatives}" if d.alternatives else "")
                + "\n"
            )
        return ToolResult(text="\n".join(lines), data=data)

    def known_profiles(self) -> list[dict[str, Any]]:
        """Every profile directory with a database, and its memory count."""
        profiles = []
        profiles_dir = self.ctx.settings.profiles_dir
        if not profiles_dir.exists():
            return profiles

        for db_path in sorted(profiles_dir.glob(f"*/{DB_FILENAME}")):
            name = db_path.parent.name
            count = None
            try:
                conn = sqlite3.connect(str(db_path))
                try:
                    count = conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Could not read profile {name}: {e}")
            profiles.append({"name": name, "memories": count, "current": name == self.ctx.profile})
        return profiles

    async def _profile_info(self, req) -> ToolResult:
        profiles = self.known_profiles()
        lines = [
            f"## Profile: {self.ctx.profile}\n",
            f"**Database**: {self.ctx.profile_store.db_path}",
            f"**Data dir**: {self.ctx.settings.data_dir}",
            "\n### Known profiles",
        ]
        for p in profiles:
            marker = " ← current" if p["current"] else ""
            count = "?" if p["memories"] is None else p["memories"]
            lines.append(f"- {p['name']}: {count} memories{marker}")
        return ToolResult(
            text="\n".join(lines),
            data={"status": "ok", "profile": self.ctx.profile, "profiles": profiles},
        )
