"""Conversation memory: keeps model context within a token budget."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from isohub_agent.config import MemoryConfig
from isohub_agent.memory.store import SessionStore
from isohub_agent.obs.tracing import estimate_token_count
from isohub_agent.types import Message

logger = logging.getLogger(__name__)

TOPIC_KEYWORDS: tuple[str, ...] = (
    "residual", "commission", "merchant", "processor", "gateway",
    "chargeback", "dispute", "pci", "compliance", "interchange",
    "rate", "pricing", "terminal", "pos", "emv", "nfc",
    "underwriting", "approval", "risk", "boarding", "split",
    "tsys", "first data", "clearent", "shift4", "clover",
    "volume", "transaction", "batch", "settlement", "funding",
)

IMPORTANCE_KEYWORDS: tuple[str, ...] = (
    "merchant", "commission", "residual", "processor", "compliance",
)

MAX_TOPICS = 10


@dataclass(slots=True)
class ConversationSummary:
    summary: str
    key_topics: list[str]
    message_count: int
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ConversationStats:
    total_messages: int
    user_messages: int
    assistant_messages: int
    estimated_tokens: int
    key_topics: list[str]


def total_tokens(messages: Sequence[Message]) -> int:
    return sum(message.estimated_tokens for message in messages)


class ConversationMemoryManager:
    """Assembles bounded conversation context from the session store.

    Two selection modes are offered, both deterministic:

    - `get_context`: recent window first. When it uses less than half the
      budget, older turns are added back, condensed into one synthetic
      system summary for long sessions. Otherwise the recent window is
      trimmed to a contiguous chronological suffix.
    - `select_by_importance`: scores every message (recency decay, questions,
      domain keywords, length) and keeps the best-scoring subset that fits,
      returned in chronological order.

    Token counts use the `ceil(chars / 4)` estimate, not a real tokenizer.
    """

    def __init__(self, store: SessionStore, config: MemoryConfig | None = None) -> None:
        self.store = store
        self.config = config or MemoryConfig()

    async def get_context(
        self,
        session_id: str,
        organization_id: str,
        max_tokens: int | None = None,
    ) -> list[Message]:
        messages = await self._load(session_id, organization_id)
        return self.select_context(messages, max_tokens)

    async def select_by_importance(
        self,
        session_id: str,
        organization_id: str,
        max_tokens: int,
    ) -> list[Message]:
        messages = await self._load(session_id, organization_id)
        return self.select_important(messages, max_tokens)

    async def conversation_stats(
        self, session_id: str, organization_id: str
    ) -> ConversationStats:
        messages = await self._load(session_id, organization_id)
        return ConversationStats(
            total_messages=len(messages),
            user_messages=sum(1 for m in messages if m.role == "user"),
            assistant_messages=sum(1 for m in messages if m.role == "assistant"),
            estimated_tokens=estimate_token_count("".join(m.content for m in messages)),
            key_topics=extract_key_topics(messages),
        )

    def select_context(
        self,
        messages: Sequence[Message],
        max_tokens: int | None = None,
    ) -> list[Message]:
        budget = self.config.max_tokens if max_tokens is None else max_tokens
        if budget <= 0 or not messages:
            return []

        recent_window = self.config.recent_window
        recent = list(messages[-recent_window:])
        if total_tokens(recent) >= budget * 0.5:
            return trim_to_budget(recent, budget)

        end = max(0, len(messages) - recent_window)
        start = max(0, end - self.config.older_window)
        older = list(messages[start:end])
        if not older:
            return trim_to_budget(recent, budget)

        if len(messages) > self.config.summary_threshold:
            summary = summarize_messages(older)
            summary_message = Message(
                role="system",
                content=(
                    f"Previous conversation summary: {summary.summary}\n"
                    f"Key topics discussed: {', '.join(summary.key_topics)}"
                ),
            )
            # Recent turns never exceed half the budget here, so the summary
            # only has to fit in what they leave.
            if summary_message.estimated_tokens + total_tokens(recent) <= budget:
                return [summary_message, *recent]
            logger.debug("Summary does not fit the %d-token budget; dropping it", budget)
            return trim_to_budget(recent, budget)

        return trim_to_budget([*older, *recent], budget)

    def select_important(
        self,
        messages: Sequence[Message],
        max_tokens: int,
    ) -> list[Message]:
        if max_tokens <= 0 or not messages:
            return []

        total = len(messages)
        scored = [
            (self.score_importance(message, index, total), index)
            for index, message in enumerate(messages)
        ]
        # Highest score first; on ties the more recent message wins.
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)

        selected: list[int] = []
        used = 0
        for _, index in scored:
            cost = messages[index].estimated_tokens
            if used + cost > max_tokens:
                continue
            selected.append(index)
            used += cost

        return [messages[index] for index in sorted(selected)]

    def score_importance(self, message: Message, index: int, total: int) -> float:
        config = self.config
        score = config.importance_decay ** (total - index - 1)

        content = message.content.lower()
        if "?" in content:
            score *= config.question_boost
        for keyword in IMPORTANCE_KEYWORDS:
            if keyword in content:
                score *= config.keyword_boost
        if len(message.content) > config.long_message_chars:
            score *= config.long_message_boost
        return score

    async def _load(self, session_id: str, organization_id: str) -> list[Message]:
        session = await self.store.get_session(session_id, organization_id)
        if session is None:
            return []
        return list(session.messages)


def trim_to_budget(messages: Sequence[Message], max_tokens: int) -> list[Message]:
    """Keep the longest suffix of `messages` whose token total fits the budget."""
    kept: list[Message] = []
    used = 0
    for message in reversed(messages):
        cost = message.estimated_tokens
        if used + cost > max_tokens:
            break
        kept.append(message)
        used += cost
    kept.reverse()
    return kept


def extract_key_topics(messages: Sequence[Message]) -> list[str]:
    text = " ".join(message.content for message in messages).lower()
    return [keyword for keyword in TOPIC_KEYWORDS if keyword in text][:MAX_TOPICS]


def summarize_messages(messages: Sequence[Message]) -> ConversationSummary:
    """Keyword-based summary of a span of turns; no model call."""
    if not messages:
        return ConversationSummary(summary="", key_topics=[], message_count=0)

    topics = extract_key_topics(messages)
    questions = sum(1 for message in messages if message.role == "user")
    leading = ", ".join(topics[:3]) or "general inquiries"
    trailing = ", ".join(topics[3:6]) or "general inquiries"
    summary = (
        f"The user asked {questions} questions about: {leading}. "
        f"Key discussions included topics like {trailing}."
    )
    return ConversationSummary(
        summary=summary,
        key_topics=topics,
        message_count=len(messages),
    )
