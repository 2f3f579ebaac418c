"""
Schema migrations - Upgrading old databases in place.

Each migration has a version number. The database remembers the last
version it saw in PRAGMA user_version, and on open we apply everything
newer, in order, one transaction per migration.

Every migration is written to be safe to re-run: databases created by the
earlier releases already have some of these tables (with version 0), so
each step checks before it changes anything.

If a migration fails it is rolled back and logged, and we stop there.
The server keeps running on the older schema.
"""

import logging
import sqlite3
from typing import Callable

from eclipse_core.models import ALL_KINDS

logger = logging.getLogger("eclipse_core.migrations")


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def _table_sql(conn: sqlite3.Connection, table: str) -> str:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,),
    ).fetchone()
    return row[0] if row else ""


# =============================================================================
# MIGRATIONS
# =============================================================================

def _v1_base_tables(conn: sqlite3.Connection) -> None:
    """Memories, sessions and decisions (the first schema)."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS memories (
            id TEXT PRIMARY KEY,
            type TEXT NOT NULL CHECK(type IN ('semantic', 'procedural', 'episodic')),
            category TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            tags TEXT DEFAULT '[]',
            confidence REAL DEFAULT 1.0,
            source_context TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_accessed TEXT NOT NULL,
            access_count INTEGER DEFAULT 0
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            current_phase TEXT DEFAULT 'understand',
            task_summary TEXT,
            checkpoints TEXT DEFAULT '[]',
            ended_at TEXT
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS decisions (
            id TEXT PRIMARY KEY,
            session_id TEXT,
            decision TEXT NOT NULL,
            context TEXT NOT NULL,
            rationale TEXT NOT NULL,
            alternatives TEXT,
            outcome TEXT,
            created_at TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_decisions_session ON decisions(session_id)")


def _v2_embedding_column(conn: sqlite3.Connection) -> None:
    """Vectors live next to the row as float32 bytes."""
    if "embedding" not in _columns(conn, "memories"):
        conn.execute("ALTER TABLE memories ADD COLUMN embedding BLOB")


def _v3_links_and_usage(conn: sqlite3.Connection) -> None:
    """Knowledge graph edges, tool usage counters, session outcome."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS memory_links (
            id TEXT PRIMARY KEY,
            source_id TEXT NOT NULL,
            target_id TEXT NOT NULL,
            relationship TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE(source_id, target_id)
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_links_target ON memory_links(target_id)")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS tool_usage (
            tool_name TEXT PRIMARY KEY,
            call_count INTEGER DEFAULT 0,
            last_called TEXT,
            first_called TEXT
        )
    """)
    if "outcome" not in _columns(conn, "sessions"):
        conn.execute("ALTER TABLE sessions ADD COLUMN outcome TEXT")


def _v4_short_id_index(conn: sqlite3.Connection) -> None:
    """Indexed 8-char prefix so short-id lookups don't scan the table."""
    if "short_id" not in _columns(conn, "memories"):
        conn.execute("ALTER TABLE memories ADD COLUMN short_id TEXT")
    conn.execute("UPDATE memories SET short_id = substr(id, 1, 8) WHERE short_id IS NULL")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_short_id ON memories(short_id)")


def _v5_skill_kind(conn: sqlite3.Connection) -> None:
    """Rebuild memories so the type constraint accepts every current kind.

    SQLite can't alter a CHECK constraint, so: new table, copy, drop, rename.
    This runs last: if it fails, the older constraint only rejects the
    newer kinds and everything else keeps working.
    """
    current_sql = _table_sql(conn, "memories")
    if all(f"'{kind}'" in current_sql for kind in ALL_KINDS):
        return

    kinds = ", ".join(f"'{kind}'" for kind in ALL_KINDS)
    conn.execute(f"""
        CREATE TABLE memories_new (
            id TEXT PRIMARY KEY,
            type TEXT NOT NULL CHECK(type IN ({kinds})),
            category TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            tags TEXT DEFAULT '[]',
            confidence REAL DEFAULT 1.0,
            source_context TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_accessed TEXT NOT NULL,
            access_count INTEGER DEFAULT 0,
            embedding BLOB,
            short_id TEXT
        )
    """)
    copied = (
        "id, type, category, title, content, tags, confidence, source_context, "
        "created_at, updated_at, last_accessed, access_count, embedding, short_id"
    )
    conn.execute(f"INSERT INTO memories_new ({copied}) SELECT {copied} FROM memories")
    conn.execute("DROP TABLE memories")
    conn.execute("ALTER TABLE memories_new RENAME TO memories")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_short_id ON memories(short_id)")


MIGRATIONS: list[tuple[int, str, Callable[[sqlite3.Connection], None]]] = [
    (1, "base tables", _v1_base_tables),
    (2, "embedding column", _v2_embedding_column),
    (3, "links and tool usage", _v3_links_and_usage),
    (4, "short id index", _v4_short_id_index),
    (5, "skill kind", _v5_skill_kind),
]

LATEST_VERSION = MIGRATIONS[-1][0]


# =============================================================================
# RUNNER
# =============================================================================

def schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def apply_migrations(conn: sqlite3.Connection, migrations=None) -> list[int]:
    """Apply pending migrations in order. Returns the versions applied.

    Stops at the first failure (logged); never raises.
    """
    migrations = MIGRATIONS if migrations is None else migrations
    applied = []
    current = schema_version(conn)

    for version, name, migrate in migrations:
        if version <= current:
            continue
        try:
            conn.execute("BEGIN")
            migrate(conn)
            conn.execute(f"PRAGMA user_version = {int(version)}")
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.warning(
                f"Migration {version} ({name}) failed, continuing on schema v{current}: {e}"
            )
            break
        current = version
        applied.append(version)
        logger.debug(f"Applied migration {version}: {name}")

    return applied
