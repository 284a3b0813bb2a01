"""Query orchestration: retrieval context + memory + gateway + session log."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from isohub_agent.agent.react import ToolUseAgent
from isohub_agent.errors import MemoryStoreFailure
from isohub_agent.memory.manager import ConversationMemoryManager
from isohub_agent.memory.store import SessionStore
from isohub_agent.obs.tracing import TraceStore
from isohub_agent.providers.gateway import ProviderGateway
from isohub_agent.retrieval.hybrid import HybridRetriever
from isohub_agent.types import (
    AgentResponse,
    Message,
    QueryResponse,
    SearchResult,
    TenantContext,
)

logger = logging.getLogger(__name__)

KNOWLEDGE_LIMIT = 3


def format_knowledge_context(results: Sequence[SearchResult]) -> str:
    if not results:
        return ""
    lines = ["", "", "Relevant information from knowledge base:"]
    for result in results:
        lines.append(f"Q: {result.question}\nA: {result.answer}\n")
    return "\n".join(lines)


class QueryOrchestrator:
    """Entry point for natural-language questions.

    `handle` is the direct chat path: knowledge context is injected into the
    query text and a single gateway completion answers it. `run_agent` is the
    separate tool-using path. Both persist the turn to the session store only
    after a complete answer exists, and a persistence failure never fails the
    user-visible response.
    """

    def __init__(
        self,
        *,
        gateway: ProviderGateway,
        retriever: HybridRetriever,
        memory: ConversationMemoryManager,
        sessions: SessionStore,
        agent: ToolUseAgent | None = None,
        trace_store: TraceStore | None = None,
        context_tokens: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.retriever = retriever
        self.memory = memory
        self.sessions = sessions
        self.agent = agent
        self.trace_store = trace_store
        self.context_tokens = context_tokens

    async def handle(
        self,
        query: str,
        context: TenantContext,
        prior_messages: Sequence[Message] | None = None,
    ) -> QueryResponse:
        results, history = await asyncio.gather(
            self._knowledge(query, context),
            self._history(context, prior_messages),
        )

        response = await self.gateway.complete(
            query + format_knowledge_context(results), history, context
        )

        await self._persist(
            context,
            prior_messages,
            [
                Message(role="user", content=query),
                Message(role="assistant", content=response.content),
            ],
            model_used=response.model_used,
            tokens=response.tokens_used,
            latency_ms=response.latency_ms,
        )
        if self.trace_store is not None:
            self.trace_store.create_record(
                kind="chat",
                organization_id=context.organization_id,
                session_id=context.session_id,
                model_used=response.model_used,
                tokens_used=response.tokens_used,
                latency_ms=response.latency_ms,
                knowledge_used=len(results),
            )

        return QueryResponse(
            content=response.content,
            session_id=context.session_id,
            model_used=response.model_used,
            tokens_used=response.tokens_used,
            latency_ms=response.latency_ms,
            knowledge_used=len(results),
        )

    async def run_agent(
        self,
        query: str,
        context: TenantContext,
        prior_messages: Sequence[Message] | None = None,
    ) -> AgentResponse:
        if self.agent is None:
            raise RuntimeError("No tool-use agent configured")

        history = await self._history(context, prior_messages)
        response = await self.agent.run(query, context, history)

        await self._persist(
            context,
            prior_messages,
            [
                Message(role="user", content=query),
                Message(role="assistant", content=response.content),
            ],
            model_used=response.model_used,
            tokens=response.tokens_used,
            latency_ms=response.latency_ms,
        )
        if self.trace_store is not None:
            self.trace_store.create_record(
                kind="agent",
                organization_id=context.organization_id,
                session_id=context.session_id,
                model_used=response.model_used,
                tokens_used=response.tokens_used,
                latency_ms=response.latency_ms,
                tools_used=response.tools_used,
                steps=response.trace,
            )
        return response

    async def _knowledge(self, query: str, context: TenantContext) -> list[SearchResult]:
        try:
            return await self.retriever.search(
                query, context.organization_id, limit=KNOWLEDGE_LIMIT
            )
        except Exception as exc:
            logger.warning("Knowledge retrieval failed; answering without it: %s", exc)
            return []

    async def _history(
        self,
        context: TenantContext,
        prior_messages: Sequence[Message] | None,
    ) -> list[Message]:
        if prior_messages is not None:
            return list(prior_messages)
        try:
            return await self.memory.get_context(
                context.session_id, context.organization_id, self.context_tokens
            )
        except Exception as exc:
            logger.warning("Loading conversation context failed: %s", exc)
            return []

    async def _persist(
        self,
        context: TenantContext,
        prior_messages: Sequence[Message] | None,
        new_messages: list[Message],
        *,
        model_used: str,
        tokens: int,
        latency_ms: float,
    ) -> None:
        try:
            if prior_messages is not None:
                messages = [*prior_messages, *new_messages]
            else:
                session = await self.sessions.get_session(
                    context.session_id, context.organization_id
                )
                existing = list(session.messages) if session is not None else []
                messages = [*existing, *new_messages]

            await self.sessions.append_session(
                context.session_id,
                context.organization_id,
                messages,
                model_used,
                tokens,
                latency_ms,
                user_id=context.user_id,
            )
        except Exception as exc:
            logger.exception(
                "%s", MemoryStoreFailure(f"Saving session {context.session_id} failed: {exc}")
            )
