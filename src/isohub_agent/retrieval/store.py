"""Knowledge store interface and an in-memory adapter."""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from isohub_agent.types import KnowledgeEntry


class KnowledgeStore(Protocol):
    """Contract of the external knowledge-entry store."""

    async def list_entries(
        self,
        organization_id: str,
        *,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[KnowledgeEntry]:
        """Return entries visible to a tenant, optionally filtered by category."""

    async def increment_usage(self, entry_id: int) -> None:
        """Bump the persistent usage counter of one entry."""

    async def upsert_entry(self, entry: KnowledgeEntry) -> None:
        """Insert or replace a whole entry."""

    async def set_embedding(self, entry_id: int, embedding: list[float]) -> None:
        """Store a computed embedding, leaving every other field untouched."""


class InMemoryKnowledgeStore:
    """Deterministic knowledge store used for tests and local prototyping."""

    def __init__(self, entries: list[KnowledgeEntry] | None = None) -> None:
        self._entries: dict[int, KnowledgeEntry] = {}
        for entry in entries or []:
            self._entries[entry.id] = entry

    async def list_entries(
        self,
        organization_id: str,
        *,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[KnowledgeEntry]:
        return [
            entry
            for entry in self._entries.values()
            if entry.organization_id == organization_id
            and (not active_only or entry.is_active)
            and (category is None or entry.category == category)
        ]

    async def increment_usage(self, entry_id: int) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(f"Knowledge entry not found: {entry_id}")
        self._entries[entry_id] = replace(entry, usage_count=entry.usage_count + 1)

    async def upsert_entry(self, entry: KnowledgeEntry) -> None:
        self._entries[entry.id] = entry

    async def set_embedding(self, entry_id: int, embedding: list[float]) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(f"Knowledge entry not found: {entry_id}")
        self._entries[entry_id] = replace(entry, embedding=list(embedding))

    def get(self, entry_id: int) -> KnowledgeEntry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(f"Knowledge entry not found: {entry_id}")
        return entry

    def __len__(self) -> int:
        return len(self._entries)
