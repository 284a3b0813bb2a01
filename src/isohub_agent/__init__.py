"""ISO Hub AI agent subsystem."""

from .config import AgentConfig, GatewayConfig, MemoryConfig, ProviderConfig, RetrievalConfig

__all__ = ["AgentConfig", "GatewayConfig", "MemoryConfig", "ProviderConfig", "RetrievalConfig"]
