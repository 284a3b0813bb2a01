"""Hybrid retriever: vector + BM25 routes fused with RRF and re-ranked."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from isohub_agent.config import RetrievalConfig
from isohub_agent.errors import RetrievalDegraded
from isohub_agent.retrieval.embeddings import EmbeddingService
from isohub_agent.retrieval.fusion import FusionLayer
from isohub_agent.retrieval.similarity import BM25Scorer, cosine_similarity
from isohub_agent.retrieval.store import KnowledgeStore
from isohub_agent.retrieval.text import expand_query, tokenize
from isohub_agent.types import SearchResult

logger = logging.getLogger(__name__)


class HybridRetriever:
    """Combines semantic and lexical retrieval over tenant knowledge entries.

    Both routes oversample (`limit * candidate_multiplier`) before fusion so
    entries ranked moderately by both still survive to the final cut. A
    failing route degrades to an empty list; the other route still answers.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embeddings: EmbeddingService | None = None,
        fusion_layer: FusionLayer | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.store = store
        self.config = config or RetrievalConfig()
        self.embeddings = embeddings or EmbeddingService(store=store, config=self.config)
        self.fusion_layer = fusion_layer or FusionLayer(self.config)
        self._background: set[asyncio.Task[None]] = set()

    async def search(
        self,
        query: str,
        organization_id: str,
        limit: int | None = None,
        category: str | None = None,
    ) -> list[SearchResult]:
        """Return at most `limit` results ordered by descending fused score.

        Steps:
        1. Expand the query with domain synonyms (keyword route only).
        2. Run the vector route on the raw query and BM25 on the expanded one.
        3. Fuse with weighted RRF and re-rank by exact term/phrase overlap.
        4. Bump usage counters for the returned entries without awaiting.
        """
        final_k = self.config.default_limit if limit is None else limit
        if final_k <= 0 or not query.strip():
            return []

        candidate_k = final_k * self.config.candidate_multiplier
        expanded = expand_query(query)

        vector_outcome, keyword_outcome = await asyncio.gather(
            self.vector_search(query, organization_id, candidate_k, category),
            self.keyword_search(expanded, organization_id, candidate_k, category),
            return_exceptions=True,
        )
        vector_results = self._route_or_empty("vector", vector_outcome)
        keyword_results = self._route_or_empty("keyword", keyword_outcome)

        results = self.fusion_layer.fuse(
            query, vector_results, keyword_results, limit=final_k
        )
        for result in results:
            self._record_usage(result.entry_id)
        return results

    async def vector_search(
        self,
        query: str,
        organization_id: str,
        limit: int,
        category: str | None = None,
    ) -> list[SearchResult]:
        entries = await self.store.list_entries(organization_id, category=category)
        if not entries:
            return []

        query_vector, query_fallback = await self.embeddings.embed_query(query)
        entry_vectors = await asyncio.gather(
            *(self.embeddings.embed_entry(entry) for entry in entries)
        )

        scored: list[SearchResult] = []
        for entry, vector in zip(entries, entry_vectors, strict=True):
            if vector is not None:
                score = cosine_similarity(query_vector, vector)
            else:
                score = cosine_similarity(
                    query_fallback, self.embeddings.fallback.embed(entry.text)
                )
            scored.append(SearchResult.from_entry(entry, score, "vector"))

        ranked = sorted(scored, key=lambda item: item.score, reverse=True)
        return ranked[:limit]

    async def keyword_search(
        self,
        query: str,
        organization_id: str,
        limit: int,
        category: str | None = None,
    ) -> list[SearchResult]:
        entries = await self.store.list_entries(organization_id, category=category)
        query_terms = tokenize(query)
        if not entries or not query_terms:
            return []

        documents = [tokenize(entry.text) for entry in entries]
        scorer = BM25Scorer(documents, self.config)

        scored = [
            SearchResult.from_entry(entry, scorer.score(query_terms, document), "keyword")
            for entry, document in zip(entries, documents, strict=True)
        ]
        ranked = sorted(
            (item for item in scored if item.score > 0),
            key=lambda item: item.score,
            reverse=True,
        )
        return ranked[:limit]

    async def wait_for_background(self) -> None:
        """Await pending usage-counter updates (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    @staticmethod
    def _route_or_empty(
        route: str, outcome: list[SearchResult] | BaseException
    ) -> list[SearchResult]:
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            logger.warning("%s", RetrievalDegraded(f"{route} route failed: {outcome!r}"))
            return []
        return outcome

    def _record_usage(self, entry_id: int) -> None:
        task = asyncio.ensure_future(self.store.increment_usage(entry_id))
        self._background.add(task)
        task.add_done_callback(self._usage_done(entry_id))

    def _usage_done(self, entry_id: int) -> Callable[[asyncio.Task[None]], None]:
        def _callback(task: asyncio.Task[None]) -> None:
            self._background.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.warning("Usage increment for entry %s failed: %s", entry_id, exc)

        return _callback
