"""FastAPI entrypoint for chat, agent, knowledge search and metrics endpoints."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from isohub_agent.agent.react import ToolUseAgent
from isohub_agent.agent.registry import ToolRegistry
from isohub_agent.agent.tools import register_builtin_tools
from isohub_agent.config import AgentConfig, GatewayConfig, MemoryConfig, ProviderConfig, RetrievalConfig
from isohub_agent.memory.manager import ConversationMemoryManager
from isohub_agent.memory.store import InMemorySessionStore
from isohub_agent.obs.tracing import TraceStore
from isohub_agent.orchestrator import QueryOrchestrator
from isohub_agent.providers.backends import LangChainChatBackend, ProviderBackend
from isohub_agent.providers.gateway import ProviderGateway
from isohub_agent.retrieval.embedder import Embedder, LangChainEmbedder
from isohub_agent.retrieval.embeddings import EmbeddingService
from isohub_agent.retrieval.hybrid import HybridRetriever
from isohub_agent.retrieval.store import InMemoryKnowledgeStore
from isohub_agent.types import Message, TenantContext

logger = logging.getLogger(__name__)

FAILURE_DETAIL = "Failed to process request"


def build_gateway_from_env() -> ProviderGateway:
    """Register one provider per model whose credentials are present.

    Order is primary (Claude Sonnet), secondary (GPT-4o mini), fallback
    (GPT-3.5 Turbo). Each model can be replaced through its environment
    variable. With no credentials the gateway has no providers and every
    call returns the degraded response.
    """
    timeout = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))
    backends: dict[str, ProviderBackend] = {}
    providers: list[ProviderConfig] = []

    if os.getenv("ANTHROPIC_API_KEY"):
        from langchain_anthropic import ChatAnthropic

        model = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")
        backends["anthropic"] = LangChainChatBackend("anthropic", ChatAnthropic(model=model))
        providers.append(ProviderConfig(name="anthropic", model=model, timeout_seconds=timeout))

    if os.getenv("OPENAI_API_KEY"):
        from langchain_openai import ChatOpenAI

        for name, variable, default in (
            ("openai", "OPENAI_MODEL", "gpt-4o-mini"),
            ("openai-fallback", "OPENAI_FALLBACK_MODEL", "gpt-3.5-turbo"),
        ):
            model = os.getenv(variable, default)
            backends[name] = LangChainChatBackend(name, ChatOpenAI(model=model))
            providers.append(ProviderConfig(name=name, model=model, timeout_seconds=timeout))

    return ProviderGateway(backends, GatewayConfig(providers=providers))


def _create_embedder() -> Embedder | None:
    if not os.getenv("OPENAI_API_KEY"):
        return None

    from langchain_openai import OpenAIEmbeddings

    return LangChainEmbedder(
        OpenAIEmbeddings(model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"))
    )


class HistoryMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant|system)$")
    content: str


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    session_id: str | None = None
    user_id: int | None = None
    history: list[HistoryMessage] | None = None


class KnowledgeSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)
    category: str | None = None


app = FastAPI(title="ISO Hub Agent", version="0.1.0")

_retrieval_config = RetrievalConfig()
_knowledge_store = InMemoryKnowledgeStore()
_embeddings = EmbeddingService(_create_embedder(), store=_knowledge_store, config=_retrieval_config)
_retriever = HybridRetriever(_knowledge_store, _embeddings, config=_retrieval_config)

_session_store = InMemorySessionStore()
_memory = ConversationMemoryManager(_session_store, MemoryConfig())

_gateway = build_gateway_from_env()
_registry = ToolRegistry()
register_builtin_tools(_registry, _retriever)
_agent = ToolUseAgent(gateway=_gateway, tool_registry=_registry, config=AgentConfig())

_trace_store = TraceStore()
_orchestrator = QueryOrchestrator(
    gateway=_gateway,
    retriever=_retriever,
    memory=_memory,
    sessions=_session_store,
    agent=_agent,
    trace_store=_trace_store,
)


def _context(request: QueryRequest) -> TenantContext:
    return TenantContext(
        organization_id=request.organization_id,
        session_id=request.session_id or str(uuid.uuid4()),
        user_id=request.user_id,
    )


def _prior_messages(request: QueryRequest) -> list[Message] | None:
    if request.history is None:
        return None
    return [Message(role=item.role, content=item.content) for item in request.history]


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "providers": _gateway.available_providers(),
        "real_embeddings": _embeddings.has_real_embedder,
        "tools": _agent.available_tools(),
        "trace_count": len(_trace_store.list_recent(limit=1000)),
    }


@app.post("/query")
async def query(request: QueryRequest) -> dict[str, Any]:
    try:
        response = await _orchestrator.handle(
            request.query, _context(request), _prior_messages(request)
        )
    except Exception as exc:
        logger.exception("Query failed")
        raise HTTPException(status_code=500, detail=FAILURE_DETAIL) from exc
    return asdict(response)


@app.post("/agent")
async def agent(request: QueryRequest) -> dict[str, Any]:
    context = _context(request)
    try:
        response = await _orchestrator.run_agent(
            request.query, context, _prior_messages(request)
        )
    except Exception as exc:
        logger.exception("Agent run failed")
        raise HTTPException(status_code=500, detail=FAILURE_DETAIL) from exc
    return {"session_id": context.session_id, **asdict(response)}


@app.post("/knowledge/search")
async def knowledge_search(request: KnowledgeSearchRequest) -> dict[str, Any]:
    try:
        results = await _retriever.search(
            request.query,
            request.organization_id,
            limit=request.limit,
            category=request.category,
        )
    except Exception as exc:
        logger.exception("Knowledge search failed")
        raise HTTPException(status_code=500, detail=FAILURE_DETAIL) from exc
    return {"items": [asdict(result) for result in results]}


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
