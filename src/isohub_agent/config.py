"""Configuration models for the ISO Hub agent subsystem."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEGRADED_MESSAGE = (
    "I apologize, but I'm currently experiencing technical difficulties. "
    "Please try again in a moment."
)


class RetrievalConfig(BaseModel):
    """Configures hybrid (BM25 + vector) retrieval, fusion and re-ranking."""

    bm25_k1: float = Field(default=1.5, gt=0.0)
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0)
    # Fixed estimate carried over from the production index. Set to None to
    # compute the mean length of the current candidate set per query.
    avg_doc_length: float | None = 100.0
    rrf_k: int = Field(default=60, ge=1)
    vector_weight: float = Field(default=0.6, gt=0.0)
    keyword_weight: float = Field(default=0.4, gt=0.0)
    candidate_multiplier: int = Field(default=2, ge=1)
    default_limit: int = Field(default=5, ge=1)
    embedding_dimension: int = Field(default=384, ge=8)
    embedding_cache_size: int = Field(default=1000, ge=1)


class MemoryConfig(BaseModel):
    """Configures context-window assembly and importance scoring."""

    max_tokens: int = Field(default=8000, ge=1)
    recent_window: int = Field(default=10, ge=1)
    older_window: int = Field(default=30, ge=0)
    summary_threshold: int = Field(default=20, ge=0)
    importance_decay: float = Field(default=0.95, gt=0.0, le=1.0)
    question_boost: float = Field(default=1.3, ge=1.0)
    keyword_boost: float = Field(default=1.1, ge=1.0)
    long_message_chars: int = Field(default=500, ge=1)
    long_message_boost: float = Field(default=1.2, ge=1.0)


class AgentConfig(BaseModel):
    """Configures the tool-use loop."""

    max_iterations: int = Field(default=5, ge=1)
    tool_timeout_seconds: float = Field(default=15.0, gt=0.0)
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class ProviderConfig(BaseModel):
    """One entry of the ordered provider list (primary, secondary, fallback)."""

    name: str = Field(min_length=1)
    model: str = Field(min_length=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    available: bool = True
    max_tokens: int = Field(default=4000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class TenantModelConfig(BaseModel):
    """Per-organization override of provider order, models and prompt additions."""

    organization_id: str
    provider_order: list[str] = Field(default_factory=list)
    custom_prompts: list[str] = Field(default_factory=list)
    # Provider name -> model id, replacing that provider's default model.
    models: dict[str, str] = Field(default_factory=dict)
    max_tokens: int | None = None
    temperature: float | None = None


class GatewayConfig(BaseModel):
    """Configures provider fallback ordering and the degraded sentinel."""

    providers: list[ProviderConfig] = Field(default_factory=list)
    tenant_cache_size: int = Field(default=256, ge=1)
    degraded_message: str = DEGRADED_MESSAGE
