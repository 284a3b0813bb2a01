"""Embedding resolution for queries and knowledge entries."""

from __future__ import annotations

import logging

from isohub_agent.config import RetrievalConfig
from isohub_agent.retrieval.cache import EmbeddingCache
from isohub_agent.retrieval.embedder import Embedder, HashingEmbedder
from isohub_agent.retrieval.store import KnowledgeStore
from isohub_agent.types import KnowledgeEntry

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Resolves embeddings through a real provider with a hashing fallback.

    Real embeddings go through the injected `EmbeddingCache`, so identical
    text is embedded once and concurrent first requests are coalesced.
    Fallback vectors are cheap and deterministic and are never cached or
    written back to the knowledge store.
    """

    def __init__(
        self,
        embedder: Embedder | None = None,
        *,
        cache: EmbeddingCache | None = None,
        store: KnowledgeStore | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.config = config or RetrievalConfig()
        self.embedder = embedder
        self.fallback = HashingEmbedder(self.config.embedding_dimension)
        self.cache = cache or EmbeddingCache(self.config.embedding_cache_size)
        self.store = store

    @property
    def has_real_embedder(self) -> bool:
        return self.embedder is not None

    async def embed(self, text: str) -> list[float]:
        """Return a real embedding for `text`, or the fallback on failure."""
        if self.embedder is None:
            return self.fallback.embed(text)
        try:
            return await self.cache.get_or_compute(text, self.embedder.embed_query)
        except Exception as exc:
            logger.warning("Embedding provider failed, using fallback: %s", exc)
            return self.fallback.embed(text)

    async def embed_query(self, query: str) -> tuple[list[float], list[float]]:
        """Return `(real_or_fallback, fallback)` vectors for a query.

        Entries that carry a real embedding are compared with the first,
        entries without one with the second, so both sides of every
        comparison come from the same embedding space.
        """
        fallback = self.fallback.embed(query)
        if self.embedder is None:
            return fallback, fallback
        return await self.embed(query), fallback

    async def embed_entry(self, entry: KnowledgeEntry) -> list[float] | None:
        """Return the entry's real embedding, computing and caching it lazily.

        Returns None when no real embedding is available, in which case the
        caller falls back to hashing the entry text.
        """
        if entry.embedding:
            return entry.embedding
        if self.embedder is None:
            return None

        try:
            embedding = await self.cache.get_or_compute(entry.text, self.embedder.embed_query)
        except Exception as exc:
            logger.warning("Embedding entry %s failed: %s", entry.id, exc)
            return None

        await self._write_back(entry.id, embedding)
        return embedding

    async def backfill(self, organization_id: str, *, batch_size: int = 10) -> int:
        """Embed every entry of a tenant and store the vectors.

        Entries are embedded in batches with `embed_documents`. When a batch
        fails its entries are retried one at a time and the ones that still
        fail are skipped. Returns the number of entries updated.
        """
        if self.embedder is None or self.store is None:
            return 0

        entries = await self.store.list_entries(organization_id, active_only=False)
        updated = 0
        for start in range(0, len(entries), batch_size):
            batch = entries[start : start + batch_size]
            try:
                vectors: list[list[float] | None] = list(
                    await self.embedder.embed_documents([entry.text for entry in batch])
                )
            except Exception as exc:
                logger.warning("Batch embedding failed, retrying entries one by one: %s", exc)
                vectors = [await self._embed_single(self.embedder, entry) for entry in batch]

            for entry, vector in zip(batch, vectors, strict=True):
                if vector is None:
                    continue
                self.cache.put(entry.text, vector)
                if await self._write_back(entry.id, vector):
                    updated += 1
        return updated

    async def _embed_single(self, embedder: Embedder, entry: KnowledgeEntry) -> list[float] | None:
        try:
            return await embedder.embed_query(entry.text)
        except Exception as exc:
            logger.warning("Embedding entry %s failed, skipping: %s", entry.id, exc)
            return None

    async def _write_back(self, entry_id: int, embedding: list[float]) -> bool:
        if self.store is None:
            return False
        try:
            await self.store.set_embedding(entry_id, embedding)
        except Exception as exc:
            logger.warning("Caching embedding for entry %s failed: %s", entry_id, exc)
            return False
        return True
