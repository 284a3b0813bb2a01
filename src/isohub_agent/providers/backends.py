"""Provider backend contract and the LangChain chat-model adapter."""

from __future__ import annotations

import json
from typing import Any, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from isohub_agent.errors import ProviderUnavailable
from isohub_agent.types import Message, ProviderReply, ProviderRequest, ToolCall


class ProviderBackend(Protocol):
    """Minimal contract every LLM backend satisfies.

    Implementations raise on any provider-level failure; the gateway treats
    every exception as "provider failed" and moves to the next provider.
    """

    async def invoke(self, request: ProviderRequest) -> ProviderReply:
        """Run one completion for `request`."""


class LangChainChatBackend:
    """Adapter over a LangChain chat model (`ChatOpenAI`, `ChatAnthropic`, ...)."""

    def __init__(self, name: str, llm: BaseChatModel) -> None:
        self.name = name
        self.llm = llm

    async def invoke(self, request: ProviderRequest) -> ProviderReply:
        runnable: Any = self.llm.bind_tools(request.tools) if request.tools else self.llm
        result = await runnable.ainvoke(
            to_langchain_messages(request.system_prompt, request.messages),
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        if not isinstance(result, AIMessage):
            raise ProviderUnavailable(self.name, f"unexpected reply type {type(result).__name__}")
        return from_langchain_reply(self.name, result)


def to_langchain_messages(system_prompt: str, messages: list[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "user":
            converted.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(
                AIMessage(
                    content=message.content,
                    tool_calls=[
                        {"name": call.name, "args": call.arguments, "id": call.id}
                        for call in message.tool_calls
                    ],
                )
            )
        else:
            converted.append(
                ToolMessage(
                    content=message.content,
                    tool_call_id=message.tool_call_id or "",
                    name=message.tool_name,
                )
            )
    return converted


def from_langchain_reply(provider: str, result: AIMessage) -> ProviderReply:
    text = _extract_text(result.content)
    tool_calls: list[ToolCall] = []
    for index, call in enumerate(result.tool_calls or []):
        name = call.get("name")
        if not name:
            raise ProviderUnavailable(provider, "tool call without a name")
        args = call.get("args") or {}
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except json.JSONDecodeError as exc:
                raise ProviderUnavailable(provider, f"malformed tool arguments: {exc}") from exc
        tool_calls.append(
            ToolCall(id=call.get("id") or f"{provider}-call-{index}", name=name, arguments=dict(args))
        )

    usage = result.usage_metadata or {}
    return ProviderReply(
        text=text,
        input_tokens=int(usage.get("input_tokens", 0) or 0),
        output_tokens=int(usage.get("output_tokens", 0) or 0),
        tool_calls=tool_calls,
    )


def _extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content)
