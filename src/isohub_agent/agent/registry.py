"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from isohub_agent.errors import ToolExecutionError, UnknownToolError
from isohub_agent.types import TenantContext, ToolResult, ToolTrace

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, TenantContext], Awaitable[Any]]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation.

    Handlers are async functions of `(validated_input, tenant_context)` that
    return JSON-serializable data, or a dict with an `error` key on failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.args_schema.model_json_schema()

    async def invoke(self, payload: dict[str, Any], context: TenantContext) -> Any:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data, context)


class ToolRegistry:
    """Maps tool names to specs and executes them with failures contained.

    Execution never raises for handler problems: validation errors, handler
    exceptions, timeouts and `{"error": ...}` payloads all come back as a
    `ToolResult` with `is_error=True`, so the model can see and correct them.
    Only an unknown name raises (`UnknownToolError`).
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        self.timeout_seconds = timeout_seconds

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return spec

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def definitions(self) -> list[dict[str, Any]]:
        """Name, description and JSON input schema of every tool."""
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.input_schema,
            }
            for spec in self._tools.values()
        ]

    async def execute(
        self,
        name: str,
        payload: dict[str, Any],
        context: TenantContext,
        *,
        tool_call_id: str = "",
    ) -> ToolResult:
        spec = self.get(name)
        return await self._execute_spec(spec, payload, context, tool_call_id)

    def as_langchain_tools(self, context: TenantContext) -> list[StructuredTool]:
        """Export every tool as a LangChain tool bound to one tenant."""
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec, context),
                )
            )
        return tools

    def _build_coroutine(
        self, spec: ToolSpec, context: TenantContext
    ) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            result = await self._execute_spec(spec, kwargs, context, "")
            return render_output(result.output)

        return _callable

    async def _execute_spec(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        context: TenantContext,
        tool_call_id: str,
    ) -> ToolResult:
        start = perf_counter()
        try:
            if self.timeout_seconds is None:
                output = await spec.invoke(payload, context)
            else:
                output = await asyncio.wait_for(
                    spec.invoke(payload, context), self.timeout_seconds
                )
        except ValidationError as exc:
            output = {"error": f"Invalid input for {spec.name}: {_validation_summary(exc)}"}
        except asyncio.TimeoutError:
            error = ToolExecutionError(spec.name, f"timed out after {self.timeout_seconds}s")
            logger.warning("%s", error)
            output = {"error": str(error)}
        except Exception as exc:
            error = ToolExecutionError(spec.name, str(exc) or type(exc).__name__)
            logger.warning("Tool execution failed: %s", error)
            output = {"error": str(error)}
        latency_ms = (perf_counter() - start) * 1000.0

        is_error = isinstance(output, dict) and "error" in output
        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=render_output(output)[:320],
                    latency_ms=latency_ms,
                )
            )
        return ToolResult(
            tool_call_id=tool_call_id,
            name=spec.name,
            output=output,
            is_error=is_error,
            latency_ms=latency_ms,
        )


def render_output(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, default=str)


def _validation_summary(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
        for error in exc.errors()
    )
