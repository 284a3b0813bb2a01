"""Bounded reasoning/acting loop over the provider gateway and tool registry."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from isohub_agent.agent.registry import ToolRegistry, render_output
from isohub_agent.config import AgentConfig
from isohub_agent.errors import AgentIterationExceeded, UnknownToolError
from isohub_agent.obs.tracing import Timer
from isohub_agent.providers.gateway import ProviderGateway
from isohub_agent.providers.prompts import build_agent_prompt
from isohub_agent.types import (
    AgentResponse,
    AgentStep,
    Message,
    TenantContext,
    ToolCall,
)

logger = logging.getLogger(__name__)

CONFIDENCE_WITH_TOOLS = 0.9
CONFIDENCE_WITHOUT_TOOLS = 0.7


class AgentState(str, Enum):
    START = "start"
    MODEL_CALL = "model_call"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTED = "tool_executed"
    DONE = "done"


@dataclass(slots=True)
class _Run:
    """Accumulator for one agent run."""

    messages: list[Message]
    state: AgentState = AgentState.START
    iterations: int = 0
    tokens: int = 0
    model_used: str = "error"
    last_text: str = ""
    final_text: str | None = None
    degraded: bool = False
    pending: list[ToolCall] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    trace: list[AgentStep] = field(default_factory=list)


class ToolUseAgent:
    """ReAct agent expressed as an explicit finite-state loop.

    States: START -> MODEL_CALL -> (TOOL_REQUESTED -> TOOL_EXECUTED ->
    MODEL_CALL)* -> DONE. At most `config.max_iterations` model calls are
    made per run, including when every call asks for more tools. Tool
    failures and unknown tools become observations for the model; only the
    gateway being exhausted ends a run early.
    """

    def __init__(
        self,
        *,
        gateway: ProviderGateway,
        tool_registry: ToolRegistry,
        config: AgentConfig | None = None,
    ) -> None:
        self.gateway = gateway
        self.tool_registry = tool_registry
        self.config = config or AgentConfig()
        if self.tool_registry.timeout_seconds is None:
            self.tool_registry.timeout_seconds = self.config.tool_timeout_seconds

    def available_tools(self) -> list[str]:
        return self.tool_registry.names()

    async def run(
        self,
        query: str,
        context: TenantContext,
        history: Sequence[Message] = (),
    ) -> AgentResponse:
        """Answer `query`, calling tools as the model requests them."""
        run = _Run(messages=[])
        with Timer() as timer:
            while run.state is not AgentState.DONE:
                if run.state is AgentState.START:
                    run.messages = [*history, Message(role="user", content=query)]
                    run.state = AgentState.MODEL_CALL
                elif run.state is AgentState.MODEL_CALL:
                    await self._model_call(run, context)
                elif run.state is AgentState.TOOL_REQUESTED:
                    await self._execute_tools(run, context)
                elif run.state is AgentState.TOOL_EXECUTED:
                    run.state = AgentState.MODEL_CALL

        return self._response(run, timer.elapsed_ms)

    async def _model_call(self, run: _Run, context: TenantContext) -> None:
        if run.iterations >= self.config.max_iterations:
            logger.warning(
                "%s",
                AgentIterationExceeded(
                    f"No final answer after {run.iterations} model calls; "
                    "returning best available text"
                ),
            )
            run.state = AgentState.DONE
            return

        run.iterations += 1
        prompt = build_agent_prompt(
            ((spec.name, spec.description) for spec in self.tool_registry.specs()),
            await self.gateway.tenant_prompts(context),
        )
        response = await self.gateway.converse(
            run.messages,
            context,
            tools=self.tool_registry.as_langchain_tools(context),
            system_prompt=prompt,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        if response.degraded:
            run.degraded = True
            run.state = AgentState.DONE
            return

        run.tokens += response.tokens_used
        run.model_used = response.model_used
        if response.content:
            run.last_text = response.content

        if not response.tool_calls:
            run.final_text = response.content
            run.state = AgentState.DONE
            return

        run.messages.append(
            Message(
                role="assistant",
                content=response.content,
                tool_calls=tuple(response.tool_calls),
            )
        )
        run.pending = list(response.tool_calls)
        run.state = AgentState.TOOL_REQUESTED

    async def _execute_tools(self, run: _Run, context: TenantContext) -> None:
        for call in run.pending:
            try:
                result = await self.tool_registry.execute(
                    call.name, call.arguments, context, tool_call_id=call.id
                )
            except UnknownToolError as exc:
                logger.warning("Skipping tool call %s: %s", call.id, exc)
                observation = json.dumps({"error": str(exc)})
            else:
                observation = render_output(result.output)
                run.tools_used.append(call.name)
                run.trace.append(
                    AgentStep(
                        step=len(run.trace) + 1,
                        thought=f"Using tool: {call.name}",
                        action=json.dumps(call.arguments, default=str),
                        observation=observation,
                    )
                )
            run.messages.append(
                Message(
                    role="tool",
                    content=observation,
                    tool_name=call.name,
                    tool_call_id=call.id,
                )
            )
        run.pending = []
        run.state = AgentState.TOOL_EXECUTED

    def _response(self, run: _Run, latency_ms: float) -> AgentResponse:
        if run.final_text:
            content = run.final_text
        elif run.last_text:
            content = run.last_text
        else:
            content = self.gateway.config.degraded_message

        if not run.last_text:
            confidence = 0.0
        elif run.tools_used:
            confidence = CONFIDENCE_WITH_TOOLS
        else:
            confidence = CONFIDENCE_WITHOUT_TOOLS

        return AgentResponse(
            content=content,
            tools_used=list(run.tools_used),
            trace=list(run.trace),
            confidence=confidence,
            model_used=run.model_used,
            tokens_used=run.tokens,
            latency_ms=latency_ms,
            iterations=run.iterations,
        )
