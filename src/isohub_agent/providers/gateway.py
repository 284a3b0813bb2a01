"""Multi-provider gateway with ordered, sequential fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from isohub_agent.config import GatewayConfig, ProviderConfig, TenantModelConfig
from isohub_agent.errors import ProviderExhausted, ProviderUnavailable
from isohub_agent.obs.tracing import Timer
from isohub_agent.providers.backends import ProviderBackend
from isohub_agent.providers.prompts import build_system_prompt
from isohub_agent.retrieval.cache import BoundedCache
from isohub_agent.types import (
    GatewayResponse,
    Message,
    ProviderReply,
    ProviderRequest,
    TenantContext,
)

logger = logging.getLogger(__name__)


class ModelConfigSource(Protocol):
    """Looks up per-tenant model configuration (external store)."""

    async def get_model_config(self, organization_id: str) -> TenantModelConfig | None:
        """Return the tenant's override, or None to use the defaults."""


class ProviderGateway:
    """Uniform completion interface over an ordered list of LLM providers.

    Providers are tried one at a time in configured order (primary,
    secondary, fallback). Each attempt is bounded by that provider's
    `timeout_seconds` and never retried; a failure moves on to the next
    provider, so worst-case latency is the sum of the per-provider timeouts.
    When every provider fails the caller receives a sentinel response with
    `model_used == "error"` instead of an exception.
    """

    def __init__(
        self,
        backends: Mapping[str, ProviderBackend],
        config: GatewayConfig | None = None,
        *,
        tenant_configs: ModelConfigSource | None = None,
        tenant_cache: BoundedCache[str, TenantModelConfig] | None = None,
    ) -> None:
        self.backends = dict(backends)
        self.config = config or GatewayConfig()
        self.tenant_configs = tenant_configs
        self.tenant_cache = tenant_cache or BoundedCache(self.config.tenant_cache_size)

    def available_providers(self) -> list[str]:
        return [
            provider.name
            for provider in self.config.providers
            if provider.available and provider.name in self.backends
        ]

    async def tenant_prompts(self, tenant: TenantContext) -> list[str]:
        """Prompt additions for a tenant: stored configuration first, then the request's."""
        return self._prompts(await self._tenant_config(tenant.organization_id), tenant)

    async def complete(
        self,
        query: str,
        history: Sequence[Message],
        tenant: TenantContext,
        model_hint: str | None = None,
    ) -> GatewayResponse:
        """Direct chat completion: history + the user query, no tools."""
        messages = [*history, Message(role="user", content=query)]
        return await self.converse(messages, tenant, model_hint=model_hint)

    async def converse(
        self,
        messages: Sequence[Message],
        tenant: TenantContext,
        *,
        tools: Sequence[Any] = (),
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model_hint: str | None = None,
    ) -> GatewayResponse:
        """One model turn over `messages`, optionally exposing `tools`."""
        with Timer() as timer:
            tenant_config = await self._tenant_config(tenant.organization_id)
            providers = self._provider_order(tenant_config, model_hint)
            prompt = system_prompt or build_system_prompt(self._prompts(tenant_config, tenant))

            try:
                reply, provider = await self._attempt_chain(
                    providers,
                    prompt,
                    list(messages),
                    tools=list(tools),
                    max_tokens=max_tokens or (tenant_config.max_tokens if tenant_config else None),
                    temperature=temperature
                    if temperature is not None
                    else (tenant_config.temperature if tenant_config else None),
                )
            except ProviderExhausted as exc:
                logger.error("%s; returning degraded response", exc)
                reply, provider = None, None

        if reply is None or provider is None:
            return GatewayResponse(
                content=self.config.degraded_message,
                model_used="error",
                tokens_used=0,
                latency_ms=timer.elapsed_ms,
                degraded=True,
            )
        return GatewayResponse(
            content=reply.text,
            model_used=provider.model,
            tokens_used=reply.input_tokens + reply.output_tokens,
            latency_ms=timer.elapsed_ms,
            tool_calls=list(reply.tool_calls),
        )

    async def _attempt_chain(
        self,
        providers: list[ProviderConfig],
        system_prompt: str,
        messages: list[Message],
        *,
        tools: list[Any],
        max_tokens: int | None,
        temperature: float | None,
    ) -> tuple[ProviderReply, ProviderConfig]:
        attempted: list[str] = []
        for provider in providers:
            attempted.append(provider.name)
            request = ProviderRequest(
                model=provider.model,
                system_prompt=system_prompt,
                messages=messages,
                max_tokens=max_tokens or provider.max_tokens,
                temperature=provider.temperature if temperature is None else temperature,
                tools=tools,
            )
            try:
                reply = await self._attempt(provider, request)
            except ProviderUnavailable as exc:
                logger.warning("Provider attempt failed, trying next: %s", exc)
                continue
            logger.debug("Provider %s (%s) answered", provider.name, provider.model)
            return reply, provider
        raise ProviderExhausted(attempted)

    async def _attempt(self, provider: ProviderConfig, request: ProviderRequest) -> ProviderReply:
        backend = self.backends[provider.name]
        try:
            reply = await asyncio.wait_for(backend.invoke(request), provider.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailable(
                provider.name, f"timed out after {provider.timeout_seconds:.1f}s"
            ) from exc
        except ProviderUnavailable:
            raise
        except Exception as exc:
            raise ProviderUnavailable(provider.name, repr(exc)) from exc

        if not isinstance(reply, ProviderReply):
            raise ProviderUnavailable(provider.name, "malformed response")
        if not reply.text and not reply.tool_calls:
            raise ProviderUnavailable(provider.name, "empty response")
        return reply

    @staticmethod
    def _prompts(tenant_config: TenantModelConfig | None, tenant: TenantContext) -> list[str]:
        return [*(tenant_config.custom_prompts if tenant_config else []), *tenant.custom_prompts]

    def _provider_order(
        self,
        tenant_config: TenantModelConfig | None,
        model_hint: str | None,
    ) -> list[ProviderConfig]:
        usable = [
            provider
            for provider in self.config.providers
            if provider.available and provider.name in self.backends
        ]
        if tenant_config and tenant_config.provider_order:
            by_name = {provider.name: provider for provider in usable}
            usable = [by_name[name] for name in tenant_config.provider_order if name in by_name]
        if tenant_config and tenant_config.models:
            usable = [
                provider.model_copy(update={"model": tenant_config.models[provider.name]})
                if provider.name in tenant_config.models
                else provider
                for provider in usable
            ]

        if model_hint:
            hinted = [p for p in usable if model_hint in (p.name, p.model)]
            usable = hinted + [p for p in usable if p not in hinted]
        return usable

    async def _tenant_config(self, organization_id: str) -> TenantModelConfig | None:
        if self.tenant_configs is None:
            return None
        cached = self.tenant_cache.get(organization_id)
        if cached is not None:
            return cached
        try:
            config = await self.tenant_configs.get_model_config(organization_id)
        except Exception as exc:
            logger.warning("Model config lookup for %s failed, using defaults: %s", organization_id, exc)
            return None
        if config is not None:
            self.tenant_cache.put(organization_id, config)
        return config
