"""
Data model - The things we store.

Memory     = one unit of knowledge (a fact, a how-to, an experience, a skill)
Session    = one unit of agent work, with checkpoints
Decision   = an immutable record of a technical choice
MemoryLink = a typed arrow from one memory to another
"""

import json
import secrets
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


# =============================================================================
# ENUMS
# =============================================================================

class MemoryKind(str, Enum):
    """The closed set of memory kinds."""
    SEMANTIC = "semantic"        # facts, conventions, architecture knowledge
    PROCEDURAL = "procedural"    # how-to, workflows
    EPISODIC = "episodic"        # past experiences, errors, lessons
    SKILL = "skill"              # trigger-driven procedure


class Scope(str, Enum):
    """Which store(s) an operation looks at."""
    PROFILE = "profile"
    GLOBAL = "global"
    ALL = "all"


class Relationship(str, Enum):
    """Knowledge graph edge types."""
    RELATED_TO = "related_to"
    DEPENDS_ON = "depends_on"
    SUPERSEDES = "supersedes"
    EXAMPLE_OF = "example_of"


class Phase(str, Enum):
    UNDERSTAND = "understand"
    PLAN = "plan"
    EXECUTE = "execute"
    VERIFY = "verify"


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


ALL_KINDS = tuple(k.value for k in MemoryKind)


# =============================================================================
# HELPERS
# =============================================================================

def new_id() -> str:
    """16 hex characters. The first 8 double as a short id."""
    return secrets.token_hex(8)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(dt: datetime) -> str:
    return dt.isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse stored timestamps, including legacy 'Z'-suffixed ones."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_between(earlier: Optional[datetime], later: datetime) -> float:
    if earlier is None:
        return 0.0
    return max(0.0, (later - earlier).total_seconds() / 86400)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Memory:
    """A durable knowledge unit."""
    id: str
    kind: str
    category: str
    title: str
    content: str
    tags: list = field(default_factory=list)
    confidence: float = 1.0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_accessed_at: Optional[str] = None
    access_count: int = 0
    has_embedding: bool = False
    scope: str = Scope.PROFILE.value

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @classmethod
    def from_row(cls, row, scope: str) -> "Memory":
        keys = row.keys()
        return cls(
            id=row["id"],
            kind=row["type"],
            category=row["category"],
            title=row["title"],
            content=row["content"],
            tags=json.loads(row["tags"] or "[]"),
            confidence=row["confidence"] if row["confidence"] is not None else 1.0,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_accessed_at=row["last_accessed"],
            access_count=row["access_count"] or 0,
            has_embedding="embedding" in keys and row["embedding"] is not None,
            scope=scope,
        )

    def searchable_text(self) -> str:
        """Title + content + tags, lowercased (used for keyword matching)."""
        return " ".join([self.title, self.content, " ".join(self.tags)]).lower()

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Checkpoint:
    phase: str
    timestamp: str
    note: str
    importance: str = Importance.MEDIUM.value

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Session:
    """One unit of agent work."""
    id: str
    started_at: str
    phase: str = Phase.UNDERSTAND.value
    task_summary: Optional[str] = None
    checkpoints: list = field(default_factory=list)
    ended_at: Optional[str] = None
    outcome: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_row(cls, row) -> "Session":
        raw = json.loads(row["checkpoints"] or "[]")
        checkpoints = []
        for cp in raw:
            # Legacy rows used checkpoint_at/completed_at and summary
            checkpoints.append(Checkpoint(
                phase=cp.get("phase", Phase.UNDERSTAND.value),
                timestamp=cp.get("timestamp") or cp.get("checkpoint_at") or cp.get("completed_at") or "",
                note=cp.get("note") or cp.get("summary") or "",
                importance=cp.get("importance") or Importance.MEDIUM.value,
            ))
        return cls(
            id=row["id"],
            started_at=row["started_at"],
            phase=row["current_phase"] or Phase.UNDERSTAND.value,
            task_summary=row["task_summary"],
            checkpoints=checkpoints,
            ended_at=row["ended_at"],
            outcome=row["outcome"] if "outcome" in row.keys() else None,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["active"] = self.is_active
        return data


@dataclass
class Decision:
    """An immutable record of a technical choice."""
    id: str
    decision: str
    context: str
    rationale: str
    created_at: str
    session_id: Optional[str] = None
    alternatives: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Decision":
        return cls(
            id=row["id"],
            decision=row["decision"],
            context=row["context"],
            rationale=row["rationale"],
            created_at=row["created_at"],
            session_id=row["session_id"],
            alternatives=row["alternatives"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MemoryLink:
    """A directed, typed edge between two memories."""
    id: str
    source_id: str
    target_id: str
    relationship: str
    created_at: str

    @classmethod
    def from_row(cls, row) -> "MemoryLink":
        return cls(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            relationship=row["relationship"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)
