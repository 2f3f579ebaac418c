"""
Storage Layer - Where memories live.

One SQLite file per profile (plus one shared "global" file):

    ~/.eclipse-agent/profiles/<profile>/memory.db

Each file holds memories (with their embedding vectors as bytes),
sessions, decisions, knowledge-graph links and tool usage counters.

Every change to the memories table goes through one write path
(_memory_write). That path tells the listeners (the memory cache) that
the scope changed, right after the commit. Nobody has to remember to
invalidate anything.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

from eclipse_core.migrations import apply_migrations
from eclipse_core.models import (
    Decision,
    Memory,
    MemoryLink,
    Session,
    Phase,
    new_id,
    to_timestamp,
    utc_now,
)

logger = logging.getLogger("eclipse_core.storage")

SHORT_ID_LENGTH = 8

# Sentinel: "leave the embedding column alone" (None means "clear it")
KEEP = object()


class Storage:
    """One profile's database.

    Usage:
        store = Storage(Path("/tmp/p/memory.db"), scope="profile")
        memory = store.insert_memory("semantic", "api", "Routes", "Use /api/v1")
        store.find_memory(memory.short_id)
    """

    def __init__(self, db_path: Path, scope: str):
        """Open (and create/upgrade) the database.

        Args:
            db_path: Path of the SQLite file. Parent dirs are created.
            scope: "profile" or "global" - reported on every memory read.

        Raises:
            OSError / sqlite3.Error if the file can't be created or opened.
        """
        self.db_path = Path(db_path)
        self.scope = scope
        self._listeners = []

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.db.row_factory = sqlite3.Row
        self.db.execute("PRAGMA journal_mode = WAL")

        apply_migrations(self.db)

    def close(self) -> None:
        self.db.close()

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    def add_listener(self, listener) -> None:
        """Register an object with memory_changed(scope) and
        memory_accessed(scope, ids, timestamp) methods."""
        self._listeners.append(listener)

    @contextmanager
    def _memory_write(self):
        """Run memory-table changes in one transaction, then notify."""
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            # Notify even on failure: a partial view must never be served
            for listener in self._listeners:
                listener.memory_changed(self.scope)

    # =========================================================================
    # MEMORIES
    # =========================================================================

    def insert_memory(
        self,
        kind: str,
        category: str,
        title: str,
        content: str,
        tags: Optional[list[str]] = None,
        confidence: float = 1.0,
        embedding: Optional[bytes] = None,
    ) -> Memory:
        """Store a new memory and return it."""
        memory_id = new_id()
        timestamp = to_timestamp(utc_now())

        with self._memory_write() as db:
            db.execute(
                """
                INSERT INTO memories (
                    id, short_id, type, category, title, content, tags, confidence,
                    created_at, updated_at, last_accessed, access_count, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    memory_id,
                    memory_id[:SHORT_ID_LENGTH],
                    kind,
                    category,
                    title,
                    content,
                    json.dumps(tags or []),
                    confidence,
                    timestamp,
                    timestamp,
                    timestamp,
                    embedding,
                ),
            )

        return self.get_memory(memory_id)

    def get_memory(self, memory_id: str) -> Optional[Memory]:
        row = self.db.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return Memory.from_row(row, self.scope) if row else None

    def find_memory(self, ref: str) -> Optional[Memory]:
        """Look up by full id, or by the 8-character short id.

        An ambiguous short id (two memories sharing a prefix) finds nothing.
        """
        ref = (ref or "").strip()
        if not ref:
            return None

        memory = self.get_memory(ref)
        if memory or len(ref) != SHORT_ID_LENGTH:
            return memory

        rows = self.db.execute(
            "SELECT * FROM memories WHERE short_id = ? LIMIT 2", (ref,)
        ).fetchall()
        if len(rows) == 1:
            return Memory.from_row(rows[0], self.scope)
        if len(rows) > 1:
            logger.info(f"Short id {ref} is ambiguous in {self.scope} store")
        return None

    def get_embedding(self, memory_id: str) -> Optional[bytes]:
        row = self.db.execute(
            "SELECT embedding FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        return row["embedding"] if row else None

    def load_memories(self) -> list[tuple[Memory, Optional[bytes]]]:
        """Every memory with its raw embedding bytes (for the cache)."""
        rows = self.db.execute("SELECT * FROM memories").fetchall()
        return [(Memory.from_row(row, self.scope), row["embedding"]) for row in rows]

    def update_memory(
        self,
        memory_id: str,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
        confidence: Optional[float] = None,
        embedding=KEEP,
        access_count: Optional[int] = None,
    ) -> bool:
        """Change a memory's content/tags/confidence (and maybe vector).

        Returns True if the memory exists.
        """
        updates = ["updated_at = ?"]
        params: list = [to_timestamp(utc_now())]

        if content is not None:
            updates.append("content = ?")
            params.append(content)
        if tags is not None:
            updates.append("tags = ?")
            params.append(json.dumps(tags))
        if confidence is not None:
            updates.append("confidence = ?")
            params.append(confidence)
        if embedding is not KEEP:
            updates.append("embedding = ?")
            params.append(embedding)
        if access_count is not None:
            updates.append("access_count = MAX(access_count, ?)")
            params.append(access_count)

        params.append(memory_id)
        with self._memory_write() as db:
            cursor = db.execute(
                f"UPDATE memories SET {', '.join(updates)} WHERE id = ?", params
            )
        return cursor.rowcount > 0

    def delete_memories(self, memory_ids: Iterable[str]) -> int:
        """Delete memories and any links touching them. Returns rows deleted."""
        ids = list(memory_ids)
        if not ids:
            return 0

        placeholders = ", ".join("?" for _ in ids)
        with self._memory_write() as db:
            cursor = db.execute(f"DELETE FROM memories WHERE id IN ({placeholders})", ids)
            db.execute(
                f"DELETE FROM memory_links WHERE source_id IN ({placeholders}) "
                f"OR target_id IN ({placeholders})",
                ids + ids,
            )
        return cursor.rowcount

    def touch(self, memory_ids: Iterable[str]) -> None:
        """Record a search hit: access_count + 1, last_accessed = now."""
        ids = list(memory_ids)
        if not ids:
            return

        timestamp = to_timestamp(utc_now())
        self.db.executemany(
            "UPDATE memories SET access_count = access_count + 1, last_accessed = ? WHERE id = ?",
            [(timestamp, memory_id) for memory_id in ids],
        )
        self.db.commit()

        for listener in self._listeners:
            listener.memory_accessed(self.scope, ids, timestamp)

    def search_substring(
        self,
        query: str,
        kinds: Optional[list[str]] = None,
        limit: int = 5,
    ) -> list[Memory]:
        """Lexical fallback: the query as a substring of title/content/tags."""
        pattern = f"%{query}%"
        sql = "SELECT * FROM memories WHERE (title LIKE ? OR content LIKE ? OR tags LIKE ?)"
        params: list = [pattern, pattern, pattern]

        if kinds:
            sql += f" AND type IN ({', '.join('?' for _ in kinds)})"
            params.extend(kinds)

        sql += " ORDER BY access_count DESC, last_accessed DESC LIMIT ?"
        params.append(limit)

        rows = self.db.execute(sql, params).fetchall()
        return [Memory.from_row(row, self.scope) for row in rows]

    def memories_without_embedding(self) -> list[Memory]:
        rows = self.db.execute("SELECT * FROM memories WHERE embedding IS NULL").fetchall()
        return [Memory.from_row(row, self.scope) for row in rows]

    def prune_candidates(self, cutoff: str) -> list[Memory]:
        """Never-accessed memories created before the cutoff timestamp."""
        rows = self.db.execute(
            """
            SELECT * FROM memories
            WHERE COALESCE(access_count, 0) = 0 AND created_at < ?
            ORDER BY created_at ASC
            """,
            (cutoff,),
        ).fetchall()
        return [Memory.from_row(row, self.scope) for row in rows]

    # =========================================================================
    # STATS
    # =========================================================================

    def memory_count(self) -> int:
        return self.db.execute("SELECT COUNT(*) FROM memories").fetchone()[0]

    def count_by_kind(self) -> dict[str, int]:
        rows = self.db.execute("SELECT type, COUNT(*) FROM memories GROUP BY type").fetchall()
        return {row[0]: row[1] for row in rows}

    def top_accessed(self, limit: int = 5) -> list[Memory]:
        rows = self.db.execute(
            """
            SELECT * FROM memories WHERE access_count > 0
            ORDER BY access_count DESC, last_accessed DESC LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [Memory.from_row(row, self.scope) for row in rows]

    def never_accessed_count(self) -> int:
        return self.db.execute(
            "SELECT COUNT(*) FROM memories WHERE COALESCE(access_count, 0) = 0"
        ).fetchone()[0]

    def decision_count(self) -> int:
        return self.db.execute("SELECT COUNT(*) FROM decisions").fetchone()[0]

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def active_session(self) -> Optional[Session]:
        row = self.db.execute(
            "SELECT * FROM sessions WHERE ended_at IS NULL ORDER BY started_at DESC LIMIT 1"
        ).fetchone()
        return Session.from_row(row) if row else None

    def get_session(self, session_id: str) -> Optional[Session]:
        row = self.db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return Session.from_row(row) if row else None

    def insert_session(self, task_summary: str) -> Session:
        session_id = new_id()
        self.db.execute(
            "INSERT INTO sessions (id, started_at, current_phase, task_summary, checkpoints) "
            "VALUES (?, ?, ?, ?, '[]')",
            (session_id, to_timestamp(utc_now()), Phase.UNDERSTAND.value, task_summary),
        )
        self.db.commit()
        return self.get_session(session_id)

    def save_session_progress(self, session: Session) -> None:
        """Persist phase + checkpoint log of a session."""
        self.db.execute(
            "UPDATE sessions SET current_phase = ?, checkpoints = ? WHERE id = ?",
            (
                session.phase,
                json.dumps([cp.to_dict() for cp in session.checkpoints]),
                session.id,
            ),
        )
        self.db.commit()

    def end_session(self, session_id: str, outcome: Optional[str] = None) -> None:
        self.db.execute(
            "UPDATE sessions SET ended_at = ?, outcome = COALESCE(?, outcome) WHERE id = ?",
            (to_timestamp(utc_now()), outcome, session_id),
        )
        self.db.commit()

    def end_all_active_sessions(self) -> int:
        cursor = self.db.execute(
            "UPDATE sessions SET ended_at = ? WHERE ended_at IS NULL",
            (to_timestamp(utc_now()),),
        )
        self.db.commit()
        return cursor.rowcount

    def count_active_sessions(self) -> int:
        return self.db.execute(
            "SELECT COUNT(*) FROM sessions WHERE ended_at IS NULL"
        ).fetchone()[0]

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def insert_decision(
        self,
        decision: str,
        context: str,
        rationale: str,
        alternatives: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Decision:
        decision_id = new_id()
        self.db.execute(
            """
            INSERT INTO decisions (id, session_id, decision, context, rationale, alternatives, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (decision_id, session_id, decision, context, rationale, alternatives,
             to_timestamp(utc_now())),
        )
        self.db.commit()
        row = self.db.execute("SELECT * FROM decisions WHERE id = ?", (decision_id,)).fetchone()
        return Decision.from_row(row)

    def search_decisions(self, terms: list[str], limit: int = 5) -> list[Decision]:
        """Decisions whose text or context contains any of the terms."""
        terms = [t for t in terms if t]
        if not terms:
            return []

        clauses = " OR ".join("decision LIKE ? OR context LIKE ?" for _ in terms)
        params: list = []
        for term in terms:
            params.extend([f"%{term}%", f"%{term}%"])
        params.append(limit)

        rows = self.db.execute(
            f"SELECT * FROM decisions WHERE {clauses} ORDER BY created_at DESC LIMIT ?",
            params,
        ).fetchall()
        return [Decision.from_row(row) for row in rows]

    # =========================================================================
    # LINKS
    # =========================================================================

    def upsert_link(self, source_id: str, target_id: str, relationship: str) -> MemoryLink:
        """One edge per (source, target): re-creating replaces the relationship."""
        self.db.execute(
            """
            INSERT INTO memory_links (id, source_id, target_id, relationship, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(source_id, target_id) DO UPDATE SET relationship = excluded.relationship
            """,
            (new_id(), source_id, target_id, relationship, to_timestamp(utc_now())),
        )
        self.db.commit()
        row = self.db.execute(
            "SELECT * FROM memory_links WHERE source_id = ? AND target_id = ?",
            (source_id, target_id),
        ).fetchone()
        return MemoryLink.from_row(row)

    def delete_link(self, source_id: str, target_id: str) -> bool:
        cursor = self.db.execute(
            "DELETE FROM memory_links WHERE source_id = ? AND target_id = ?",
            (source_id, target_id),
        )
        self.db.commit()
        return cursor.rowcount > 0

    def delete_links_touching(self, memory_ids: Iterable[str]) -> int:
        ids = list(memory_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.db.execute(
            f"DELETE FROM memory_links WHERE source_id IN ({placeholders}) "
            f"OR target_id IN ({placeholders})",
            ids + ids,
        )
        self.db.commit()
        return cursor.rowcount

    def links_for(self, memory_id: str) -> list[MemoryLink]:
        rows = self.db.execute(
            "SELECT * FROM memory_links WHERE source_id = ? OR target_id = ? ORDER BY created_at",
            (memory_id, memory_id),
        ).fetchall()
        return [MemoryLink.from_row(row) for row in rows]

    def all_links(self) -> list[MemoryLink]:
        rows = self.db.execute("SELECT * FROM memory_links ORDER BY created_at").fetchall()
        return [MemoryLink.from_row(row) for row in rows]
