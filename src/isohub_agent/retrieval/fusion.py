"""Fusion and re-ranking for multi-route retrieval results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from isohub_agent.config import RetrievalConfig
from isohub_agent.retrieval.text import tokenize
from isohub_agent.types import SearchResult


class Reranker(ABC):
    """Reranker interface used after score fusion."""

    @abstractmethod
    def rerank(self, query: str, candidates: list[SearchResult]) -> list[SearchResult]:
        """Return candidates in the final ranking order."""


class ExactMatchReranker(Reranker):
    """Lexical stand-in for a cross-encoder.

    Boosts each fused score by `1 + boost`, where the boost counts query terms
    found in the question (0.3 each) and the answer (0.1 each), plus a
    phrase bonus when the whole query appears verbatim in the question (0.5)
    or the answer (0.3).
    """

    def __init__(
        self,
        *,
        question_term_boost: float = 0.3,
        answer_term_boost: float = 0.1,
        question_phrase_boost: float = 0.5,
        answer_phrase_boost: float = 0.3,
    ) -> None:
        self.question_term_boost = question_term_boost
        self.answer_term_boost = answer_term_boost
        self.question_phrase_boost = question_phrase_boost
        self.answer_phrase_boost = answer_phrase_boost

    def rerank(self, query: str, candidates: list[SearchResult]) -> list[SearchResult]:
        query_terms = set(tokenize(query))
        phrase = query.strip().lower()

        rescored: list[SearchResult] = []
        for item in candidates:
            boost = 0.0
            boost += self.question_term_boost * sum(
                1 for term in tokenize(item.question) if term in query_terms
            )
            boost += self.answer_term_boost * sum(
                1 for term in tokenize(item.answer) if term in query_terms
            )
            if phrase and phrase in item.question.lower():
                boost += self.question_phrase_boost
            if phrase and phrase in item.answer.lower():
                boost += self.answer_phrase_boost
            rescored.append(replace(item, score=item.score * (1 + boost)))

        return sorted(rescored, key=lambda x: x.score, reverse=True)


def reciprocal_rank_fusion(
    route_results: list[tuple[list[SearchResult], float]],
    *,
    k: int = 60,
) -> list[SearchResult]:
    """Weighted RRF: each list contributes `weight / (k + rank + 1)` per entry.

    `rank` is zero-based. Entries present in more than one list are tagged
    `hybrid`; the others keep the match type of the list they came from.
    Output is sorted by fused score, ties keeping first-seen order.
    """
    merged: dict[int, SearchResult] = {}
    for results, weight in route_results:
        for rank, result in enumerate(results):
            contribution = weight / (k + rank + 1)
            current = merged.get(result.entry_id)
            if current is None:
                merged[result.entry_id] = replace(result, score=contribution)
            else:
                current.score += contribution
                if current.match_type != result.match_type:
                    current.match_type = "hybrid"

    return sorted(merged.values(), key=lambda x: x.score, reverse=True)


class FusionLayer:
    """Fuses vector and keyword routes with weighted RRF, then re-ranks."""

    def __init__(
        self,
        config: RetrievalConfig | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.config = config or RetrievalConfig()
        self.reranker = reranker or ExactMatchReranker()

    def fuse(
        self,
        query: str,
        vector_results: list[SearchResult],
        keyword_results: list[SearchResult],
        *,
        limit: int | None = None,
    ) -> list[SearchResult]:
        fused = reciprocal_rank_fusion(
            [
                (vector_results, self.config.vector_weight),
                (keyword_results, self.config.keyword_weight),
            ],
            k=self.config.rrf_k,
        )
        reranked = self.reranker.rerank(query, fused)
        return reranked[: limit or self.config.default_limit]
