"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from math import ceil
from typing import Any

ROLES = frozenset({"user", "assistant", "system", "tool"})
MATCH_TYPES = frozenset({"vector", "keyword", "hybrid"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return ceil(len(text) / 4)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Message:
    """One immutable turn of a conversation."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    tool_name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.content)


@dataclass(frozen=True, slots=True)
class ConversationSession:
    """A chat session; appended to by producing a new value, never in place."""

    session_id: str
    organization_id: str
    user_id: int | None = None
    messages: tuple[Message, ...] = ()
    model_used: str = ""
    total_tokens: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    def append(
        self,
        *messages: Message,
        model_used: str | None = None,
        tokens: int = 0,
    ) -> "ConversationSession":
        return replace(
            self,
            messages=self.messages + tuple(messages),
            model_used=model_used if model_used is not None else self.model_used,
            total_tokens=self.total_tokens + tokens,
        )


@dataclass(slots=True)
class KnowledgeEntry:
    """A question/answer record from the knowledge store."""

    id: int
    organization_id: str
    category: str
    question: str
    answer: str
    keywords: frozenset[str] = frozenset()
    embedding: list[float] | None = None
    usage_count: int = 0
    is_active: bool = True

    @property
    def text(self) -> str:
        return f"{self.question} {self.answer}"


@dataclass(slots=True)
class SearchResult:
    """A retrieval result with fused score and route provenance."""

    entry_id: int
    question: str
    answer: str
    category: str
    score: float
    match_type: str

    @classmethod
    def from_entry(cls, entry: KnowledgeEntry, score: float, match_type: str) -> "SearchResult":
        return cls(
            entry_id=entry.id,
            question=entry.question,
            answer=entry.answer,
            category=entry.category,
            score=score,
            match_type=match_type,
        )


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool execution, fed back to the model as an observation."""

    tool_call_id: str
    name: str
    output: Any
    is_error: bool = False
    latency_ms: float = 0.0


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class AgentStep:
    """One reasoning/acting step of the agent trace."""

    step: int
    thought: str
    action: str | None = None
    observation: str | None = None


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Caller identity forwarded by the HTTP layer."""

    organization_id: str
    session_id: str
    user_id: int | None = None
    custom_prompts: tuple[str, ...] = ()


@dataclass(slots=True)
class ProviderRequest:
    """Uniform request handed to a provider backend."""

    model: str
    system_prompt: str
    messages: list[Message]
    max_tokens: int
    temperature: float
    tools: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class ProviderReply:
    """Uniform reply produced by a provider backend."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(slots=True)
class GatewayResponse:
    """Well-formed gateway output; `degraded` marks the all-failed sentinel."""

    content: str
    model_used: str
    tokens_used: int
    latency_ms: float
    tool_calls: list[ToolCall] = field(default_factory=list)
    degraded: bool = False


@dataclass(slots=True)
class AgentResponse:
    content: str
    tools_used: list[str]
    trace: list[AgentStep]
    confidence: float
    model_used: str
    tokens_used: int
    latency_ms: float
    iterations: int


@dataclass(slots=True)
class QueryResponse:
    content: str
    session_id: str
    model_used: str
    tokens_used: int
    latency_ms: float
    knowledge_used: int
