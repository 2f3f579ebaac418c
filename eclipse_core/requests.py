"""
Tool Requests - What each tool accepts.

One pydantic model per tool. The dispatcher validates raw arguments
against the model before anything else runs, and list_tools advertises
the JSON schema generated from the same model, so the two can't drift.
"""

from typing import ClassVar, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from eclipse_core.errors import InvalidOperation

KindName = Literal["semantic", "procedural", "episodic", "skill"]
ScopeName = Literal["profile", "global", "all"]
SaveScope = Literal["profile", "global"]
PhaseName = Literal["understand", "plan", "execute", "verify"]
ImportanceName = Literal["low", "medium", "high"]
RelationshipName = Literal["related_to", "depends_on", "supersedes", "example_of"]


class ToolArgs(BaseModel):
    tool_name: ClassVar[str] = ""
    description: ClassVar[str] = ""


# =============================================================================
# TASKS
# =============================================================================

class BeginTaskRequest(ToolArgs):
    tool_name: ClassVar[str] = "begin_task"
    description: ClassVar[str] = """Start tracking a new task. Call this at the start of significant work.

Ends any task still open, starts in the 'understand' phase and returns
memories and past decisions related to the task."""

    task_summary: str = Field(min_length=1, description="What you're about to work on")


class EndTaskRequest(ToolArgs):
    tool_name: ClassVar[str] = "end_task"
    description: ClassVar[str] = """Finish the active task.

Only closes the task if the original request is fulfilled and at least one
checkpoint was recorded. Otherwise tells you what is still missing."""

    summary: str = Field(min_length=1, description="What was accomplished")
    fulfilled: bool = Field(description="Is the original request completely fulfilled?")
    verified: bool = Field(description="Was the work tested/verified?")
    remaining_work: Optional[str] = Field(default=None, description="What is left, if not fulfilled")


class CheckpointRequest(ToolArgs):
    tool_name: ClassVar[str] = "checkpoint"
    description: ClassVar[str] = "Log a significant progress point in the current phase of the active task."

    note: str = Field(min_length=1, description="What you accomplished or discovered")
    importance: ImportanceName = Field(default="medium", description="How significant is this checkpoint?")


class UpdateTaskRequest(ToolArgs):
    tool_name: ClassVar[str] = "update_task"
    description: ClassVar[str] = """Move the active task to another phase.

Phases: understand → plan → execute → verify. The phase you leave gets a
checkpoint with your note."""

    phase: PhaseName = Field(description="The phase you're moving to")
    note: Optional[str] = Field(default=None, description="Summary of the phase you're leaving")
    blockers: Optional[str] = Field(default=None, description="Blockers or concerns discovered")


class TaskResumeRequest(ToolArgs):
    tool_name: ClassVar[str] = "task_resume"
    description: ClassVar[str] = "Show the active task with its phase and checkpoints (after a context reset)."


# =============================================================================
# MEMORY
# =============================================================================

class MemorySaveRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_save"
    description: ClassVar[str] = """Save knowledge for future sessions.

Kinds:
- semantic: facts, conventions, architecture
- procedural: how-to, workflows
- episodic: experiences, errors, lessons learned
- skill: trigger → steps → related

Use scope='global' for knowledge that applies to every project."""

    kind: KindName
    category: str = Field(min_length=1, description="Free-text category, e.g. 'api', 'testing'")
    title: str = Field(min_length=1, description="Short label")
    content: str = Field(min_length=1, description="The knowledge itself")
    tags: Optional[list[str]] = Field(default=None, description="Tags (derived from the text if omitted)")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    scope: SaveScope = "profile"


class MemorySearchRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_search"
    description: ClassVar[str] = "Search memories by meaning (falls back to keyword search if the model is unavailable)."

    query: str = Field(min_length=1)
    kinds: Optional[list[KindName]] = Field(default=None, description="Only these kinds")
    limit: int = Field(default=5, ge=1, le=50)
    scope: ScopeName = "all"


class MemoryUpdateRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_update"
    description: ClassVar[str] = "Update a memory's content, tags or confidence (full or 8-character id)."

    memory_id: str = Field(min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[list[str]] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class MemoryForgetRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_forget"
    description: ClassVar[str] = "Delete a memory that is wrong or outdated (full or 8-character id)."

    memory_id: str = Field(min_length=1)
    reason: str = Field(min_length=1, description="Why this memory should go")


class MemoryLinkRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_link"
    description: ClassVar[str] = """Knowledge graph of memories.

- create: link source → target with a relationship
- list: show incoming and outgoing links of source
- delete: remove the link source → target"""

    op: Literal["create", "list", "delete"]
    source: str = Field(min_length=1, description="Memory id (full or short)")
    target: Optional[str] = Field(default=None, description="Memory id (create/delete)")
    relationship: RelationshipName = "related_to"

    @model_validator(mode="after")
    def _target_required(self):
        if self.op in ("create", "delete") and not self.target:
            raise ValueError(f"'target' is required for op '{self.op}'")
        return self


class MemoryStatsRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_stats"
    description: ClassVar[str] = "Counts by kind, most and never accessed memories, and knowledge graph stats."

    scope: ScopeName = "all"


class MemoryMaintainRequest(ToolArgs):
    tool_name: ClassVar[str] = "memory_maintain"
    description: ClassVar[str] = """Memory housekeeping. Dry run unless dry_run=false.

- find_similar: memories most similar to memory_id
- merge: delete near-duplicates of memory_id (similarity > threshold)
- prune: delete never-accessed memories older than days_threshold
- reembed: add vectors to memories saved while the model was unavailable"""

    op: Literal["find_similar", "merge", "prune", "reembed"]
    memory_id: Optional[str] = None
    limit: int = Field(default=5, ge=1, le=50)
    similarity_threshold: float = Field(default=0.9, gt=0.0, le=1.0)
    days_threshold: int = Field(default=90, ge=1)
    scope: ScopeName = "all"
    dry_run: bool = True

    @model_validator(mode="after")
    def _memory_required(self):
        if self.op in ("find_similar", "merge") and not self.memory_id:
            raise ValueError(f"'memory_id' is required for op '{self.op}'")
        return self


# =============================================================================
# DECISIONS & PROFILE
# =============================================================================

class DecisionLogRequest(ToolArgs):
    tool_name: ClassVar[str] = "decision_log"
    description: ClassVar[str] = "Record a technical decision with its context and rationale."

    decision: str = Field(min_length=1)
    context: str = Field(min_length=1)
    rationale: str = Field(min_length=1)
    alternatives: Optional[str] = None


class DecisionSearchRequest(ToolArgs):
    tool_name: ClassVar[str] = "decision_search"
    description: ClassVar[str] = "Find past decisions mentioning a phrase."

    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)


class ProfileInfoRequest(ToolArgs):
    tool_name: ClassVar[str] = "profile_info"
    description: ClassVar[str] = "Show the current profile and every known profile with its memory count."


ToolRequest = Union[
    BeginTaskRequest,
    EndTaskRequest,
    CheckpointRequest,
    UpdateTaskRequest,
    TaskResumeRequest,
    MemorySaveRequest,
    MemorySearchRequest,
    MemoryUpdateRequest,
    MemoryForgetRequest,
    MemoryLinkRequest,
    MemoryStatsRequest,
    MemoryMaintainRequest,
    DecisionLogRequest,
    DecisionSearchRequest,
    ProfileInfoRequest,
]

TOOL_REQUESTS: dict[str, type[ToolArgs]] = {
    model.tool_name: model for model in ToolRequest.__args__
}


def parse_request(name: str, arguments: Optional[dict]) -> ToolArgs:
    """Validate raw tool arguments.

    Raises:
        InvalidOperation: unknown tool
        pydantic.ValidationError: bad arguments
    """
    model = TOOL_REQUESTS.get(name)
    if model is None:
        raise InvalidOperation(f"Unknown tool: {name}")
    return model.model_validate(arguments or {})


def tool_schema(model: type[ToolArgs]) -> dict:
    """JSON schema for a tool's inputSchema."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema
