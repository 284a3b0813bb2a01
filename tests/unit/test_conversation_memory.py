import pytest

from isohub_agent.config import MemoryConfig
from isohub_agent.memory.manager import (
    ConversationMemoryManager,
    summarize_messages,
    total_tokens,
    trim_to_budget,
)
from isohub_agent.memory.store import InMemorySessionStore
from isohub_agent.types import ConversationSession, Message

ORG = "org-1"


def _conversation(count: int, content: str = "short merchant question") -> list[Message]:
    return [
        Message(role="user" if index % 2 == 0 else "assistant", content=f"{content} {index}")
        for index in range(count)
    ]


def _manager_with(messages: list[Message], session_id: str = "s-1") -> ConversationMemoryManager:
    store = InMemorySessionStore()
    store.seed(ConversationSession(session_id=session_id, organization_id=ORG, messages=tuple(messages)))
    return ConversationMemoryManager(store)


@pytest.mark.asyncio
async def test_long_session_condensed_into_summary_plus_recent_turns() -> None:
    messages = _conversation(25)
    manager = _manager_with(messages)

    context = await manager.get_context("s-1", ORG, 2000)

    assert len(context) < 25
    assert context[0].role == "system"
    assert context[0].content.startswith("Previous conversation summary:")
    assert "merchant" in context[0].content
    assert context[1:] == messages[-10:]
    assert total_tokens(context) <= 2000


@pytest.mark.asyncio
async def test_short_session_returned_verbatim() -> None:
    messages = _conversation(15)
    manager = _manager_with(messages)

    context = await manager.get_context("s-1", ORG, 2000)

    assert context == messages


@pytest.mark.asyncio
async def test_unknown_session_has_no_context() -> None:
    manager = ConversationMemoryManager(InMemorySessionStore())

    assert await manager.get_context("missing", ORG) == []


@pytest.mark.asyncio
async def test_recent_window_over_half_budget_trimmed_to_suffix() -> None:
    messages = _conversation(12, content="x" * 36)  # 10 tokens each
    manager = _manager_with(messages)

    context = await manager.get_context("s-1", ORG, 50)

    assert context == messages[-5:]


@pytest.mark.parametrize("budget", [0, 1, 7, 30, 95, 400, 2000])
def test_context_never_exceeds_budget(budget: int) -> None:
    manager = ConversationMemoryManager(InMemorySessionStore())
    messages = _conversation(40, content="residual split for merchant portfolio " * 3)

    context = manager.select_context(messages, budget)

    assert total_tokens(context) <= budget


def test_summary_dropped_when_it_does_not_fit() -> None:
    manager = ConversationMemoryManager(InMemorySessionStore(), MemoryConfig(recent_window=2))
    messages = _conversation(25, content="ok")

    context = manager.select_context(messages, 12)

    assert all(message.role != "system" for message in context)
    assert total_tokens(context) <= 12


def test_trim_to_budget_keeps_contiguous_suffix() -> None:
    messages = [Message(role="user", content="a" * 40), Message(role="user", content="b" * 8)]

    assert trim_to_budget(messages, 5) == messages[-1:]
    assert trim_to_budget(messages, 1) == []


def test_importance_selection_respects_budget_and_chronology() -> None:
    manager = ConversationMemoryManager(InMemorySessionStore())
    messages = [
        Message(role="user", content="What residual split does the processor offer?"),
        Message(role="assistant", content="filler " * 10),
        Message(role="assistant", content="filler " * 10),
        Message(role="user", content="thanks"),
    ]
    budget = messages[0].estimated_tokens + messages[3].estimated_tokens

    selected = manager.select_important(messages, budget)

    assert selected == [messages[0], messages[3]]
    assert total_tokens(selected) <= budget


def test_importance_score_boosts() -> None:
    manager = ConversationMemoryManager(InMemorySessionStore())
    plain = Message(role="user", content="hello there")
    question = Message(role="user", content="hello there?")
    keyword = Message(role="user", content="merchant commission")

    assert manager.score_importance(plain, 9, 10) == pytest.approx(1.0)
    assert manager.score_importance(plain, 8, 10) == pytest.approx(0.95)
    assert manager.score_importance(question, 9, 10) == pytest.approx(1.3)
    assert manager.score_importance(keyword, 9, 10) == pytest.approx(1.1 * 1.1)


@pytest.mark.asyncio
async def test_conversation_stats_counts_roles_and_topics() -> None:
    messages = [
        Message(role="user", content="How is a chargeback handled?"),
        Message(role="assistant", content="The processor notifies the merchant."),
    ]
    manager = _manager_with(messages)

    stats = await manager.conversation_stats("s-1", ORG)

    assert stats.total_messages == 2
    assert stats.user_messages == 1
    assert stats.assistant_messages == 1
    assert {"chargeback", "processor", "merchant"} <= set(stats.key_topics)


def test_summarize_messages_counts_user_questions() -> None:
    summary = summarize_messages(
        [
            Message(role="user", content="Explain PCI compliance"),
            Message(role="assistant", content="PCI DSS covers card data."),
        ]
    )

    assert summary.message_count == 2
    assert summary.summary.startswith("The user asked 1 questions about: pci, compliance")
