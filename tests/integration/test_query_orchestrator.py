import asyncio

import pytest

from isohub_agent.agent.react import ToolUseAgent
from isohub_agent.agent.registry import ToolRegistry
from isohub_agent.agent.tools import register_builtin_tools
from isohub_agent.config import GatewayConfig, ProviderConfig
from isohub_agent.memory.manager import ConversationMemoryManager
from isohub_agent.memory.store import InMemorySessionStore
from isohub_agent.obs.tracing import TraceStore
from isohub_agent.orchestrator import QueryOrchestrator
from isohub_agent.providers.gateway import ProviderGateway
from isohub_agent.retrieval.hybrid import HybridRetriever
from isohub_agent.retrieval.store import InMemoryKnowledgeStore
from isohub_agent.types import KnowledgeEntry, Message, ProviderReply, ProviderRequest, TenantContext, ToolCall

CONTEXT = TenantContext(organization_id="org-1", session_id="s-1", user_id=7)


class MockLLM:
    def __init__(self, replies: list[ProviderReply] | None = None, *, fail: bool = False) -> None:
        self.replies = replies or [ProviderReply(text="Here is what I found.", input_tokens=12, output_tokens=6)]
        self.fail = fail
        self.requests: list[ProviderRequest] = []

    async def invoke(self, request: ProviderRequest) -> ProviderReply:
        self.requests.append(request)
        if self.fail:
            raise ConnectionError("provider unreachable")
        return self.replies[min(len(self.requests), len(self.replies)) - 1]


class _StalledLLM(MockLLM):
    """Never answers; signals once a request has reached the provider."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def invoke(self, request: ProviderRequest) -> ProviderReply:
        self.requests.append(request)
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


class _BrokenSessionStore(InMemorySessionStore):
    async def append_session(self, *args, **kwargs) -> None:
        raise RuntimeError("database is read-only")


def _build(
    llm: MockLLM,
    entries: list[KnowledgeEntry] | None = None,
    sessions: InMemorySessionStore | None = None,
) -> tuple[QueryOrchestrator, InMemorySessionStore, TraceStore]:
    gateway = ProviderGateway(
        {"primary": llm},
        GatewayConfig(providers=[ProviderConfig(name="primary", model="primary-model")]),
    )
    retriever = HybridRetriever(InMemoryKnowledgeStore(entries))
    sessions = sessions or InMemorySessionStore()
    registry = ToolRegistry()
    register_builtin_tools(registry, retriever)
    traces = TraceStore()
    orchestrator = QueryOrchestrator(
        gateway=gateway,
        retriever=retriever,
        memory=ConversationMemoryManager(sessions),
        sessions=sessions,
        agent=ToolUseAgent(gateway=gateway, tool_registry=registry),
        trace_store=traces,
    )
    return orchestrator, sessions, traces


@pytest.mark.asyncio
async def test_chargeback_question_without_knowledge_still_answered() -> None:
    orchestrator, _, _ = _build(MockLLM())

    response = await orchestrator.handle("What is a chargeback?", CONTEXT)

    assert response.content == "Here is what I found."
    assert response.knowledge_used == 0
    assert response.session_id == "s-1"
    assert response.model_used == "primary-model"
    assert response.tokens_used == 18


@pytest.mark.asyncio
async def test_knowledge_block_appended_to_query() -> None:
    llm = MockLLM()
    entries = [
        KnowledgeEntry(
            id=1,
            organization_id="org-1",
            category="risk",
            question="How do chargebacks work?",
            answer="The cardholder's bank reverses the transaction.",
        )
    ]
    orchestrator, _, _ = _build(llm, entries)

    response = await orchestrator.handle("How does a chargeback work?", CONTEXT)

    assert response.knowledge_used == 1
    sent = llm.requests[0].messages[-1].content
    assert sent.startswith("How does a chargeback work?\n\nRelevant information from knowledge base:\n")
    assert "Q: How do chargebacks work?\nA: The cardholder's bank reverses the transaction." in sent


@pytest.mark.asyncio
async def test_turns_persisted_and_replayed_as_context() -> None:
    llm = MockLLM()
    orchestrator, sessions, _ = _build(llm)

    await orchestrator.handle("What is a MID?", CONTEXT)
    await orchestrator.handle("And a DBA?", CONTEXT)

    session = await sessions.get_session("s-1", "org-1")
    assert [m.role for m in session.messages] == ["user", "assistant", "user", "assistant"]
    assert session.user_id == 7
    assert session.total_tokens == 36
    assert [m.content for m in llm.requests[1].messages] == [
        "What is a MID?",
        "Here is what I found.",
        "And a DBA?",
    ]


@pytest.mark.asyncio
async def test_caller_history_takes_precedence_over_memory() -> None:
    llm = MockLLM()
    orchestrator, sessions, _ = _build(llm)
    prior = [Message(role="user", content="earlier"), Message(role="assistant", content="reply")]

    await orchestrator.handle("now", CONTEXT, prior_messages=prior)

    assert [m.content for m in llm.requests[0].messages] == ["earlier", "reply", "now"]
    session = await sessions.get_session("s-1", "org-1")
    assert [m.content for m in session.messages] == ["earlier", "reply", "now", "Here is what I found."]


@pytest.mark.asyncio
async def test_persistence_failure_still_returns_response() -> None:
    orchestrator, _, traces = _build(MockLLM(), sessions=_BrokenSessionStore())

    response = await orchestrator.handle("What is PCI?", CONTEXT)

    assert response.content == "Here is what I found."
    assert traces.summary()["total_requests"] == 1


@pytest.mark.asyncio
async def test_provider_outage_recorded_as_degraded_trace() -> None:
    orchestrator, sessions, traces = _build(MockLLM(fail=True))

    response = await orchestrator.handle("Hello?", CONTEXT)

    assert response.model_used == "error"
    assert traces.summary()["degraded_requests"] == 1
    session = await sessions.get_session("s-1", "org-1")
    assert session.messages[-1].content == response.content


@pytest.mark.asyncio
async def test_agent_run_persisted_and_traced() -> None:
    llm = MockLLM(
        [
            ProviderReply(text="", tool_calls=[ToolCall(id="c1", name="get_current_date", arguments={})]),
            ProviderReply(text="Today is Monday."),
        ]
    )
    orchestrator, sessions, traces = _build(llm)

    response = await orchestrator.run_agent("What day is it?", CONTEXT)

    assert response.content == "Today is Monday."
    assert response.tools_used == ["get_current_date"]
    session = await sessions.get_session("s-1", "org-1")
    assert [m.content for m in session.messages] == ["What day is it?", "Today is Monday."]
    (record,) = traces.list_recent()
    assert record.kind == "agent"
    assert record.tools_used == ["get_current_date"]
    assert traces.summary()["agent_requests"] == 1


@pytest.mark.asyncio
async def test_cancelled_chat_propagates_and_persists_nothing() -> None:
    llm = _StalledLLM()
    orchestrator, sessions, traces = _build(llm)

    task = asyncio.create_task(orchestrator.handle("What is a chargeback?", CONTEXT))
    await llm.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(sessions) == 0
    assert traces.list_recent() == []


@pytest.mark.asyncio
async def test_cancelled_agent_run_propagates_and_persists_nothing() -> None:
    llm = _StalledLLM()
    orchestrator, sessions, traces = _build(llm)

    task = asyncio.create_task(orchestrator.run_agent("What is a chargeback?", CONTEXT))
    await llm.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(sessions) == 0
    assert traces.list_recent() == []
