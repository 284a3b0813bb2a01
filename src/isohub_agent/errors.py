"""Error kinds raised and handled inside the agent subsystem."""

from __future__ import annotations


class AgentError(Exception):
    """Base class for subsystem errors."""


class ProviderUnavailable(AgentError):
    """A single provider attempt failed (network, auth, quota, malformed reply)."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class ProviderExhausted(AgentError):
    """Every configured provider failed for one call."""

    def __init__(self, attempted: list[str]) -> None:
        names = ", ".join(attempted) if attempted else "none available"
        super().__init__(f"All providers failed ({names})")
        self.attempted = attempted


class RetrievalDegraded(AgentError):
    """One or both retrieval paths failed for a query."""


class ToolExecutionError(AgentError):
    """A tool handler failed; surfaced to the model as an observation."""

    def __init__(self, tool: str, reason: str) -> None:
        super().__init__(f"{tool}: {reason}")
        self.tool = tool
        self.reason = reason


class UnknownToolError(AgentError, KeyError):
    """The model requested a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool: {self.name}"


class AgentIterationExceeded(AgentError):
    """The tool-use loop reached its iteration bound without a final answer."""


class MemoryStoreFailure(AgentError):
    """Persisting a chat session failed."""
