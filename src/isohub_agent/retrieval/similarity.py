"""Scoring primitives for the vector and keyword routes."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from math import log, sqrt

from isohub_agent.config import RetrievalConfig


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between `a` and `b`; 0.0 for zero-norm or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


class BM25Scorer:
    """Okapi BM25 over a tokenized candidate corpus.

    IDF uses document frequencies from the corpus given to the constructor.
    Document-length normalization uses `config.avg_doc_length` when it is
    set, otherwise the mean length of that corpus.
    """

    def __init__(
        self,
        corpus: Sequence[Sequence[str]],
        config: RetrievalConfig | None = None,
    ) -> None:
        self.config = config or RetrievalConfig()
        self._corpus_size = len(corpus)
        self._doc_freq: Counter[str] = Counter()
        for tokens in corpus:
            self._doc_freq.update(set(tokens))

        if self.config.avg_doc_length is not None:
            self.avg_doc_length = self.config.avg_doc_length
        else:
            total = sum(len(tokens) for tokens in corpus)
            self.avg_doc_length = (total / self._corpus_size) if total else 1.0

    def idf(self, term: str) -> float:
        n = self._corpus_size
        df = self._doc_freq.get(term, 0)
        return log((n - df + 0.5) / (df + 0.5) + 1.0)

    def score(self, query_terms: Sequence[str], document: Sequence[str]) -> float:
        k1 = self.config.bm25_k1
        b = self.config.bm25_b
        term_freq = Counter(document)
        doc_length = len(document)

        total = 0.0
        for term in query_terms:
            tf = term_freq.get(term, 0)
            if tf == 0:
                continue
            numerator = tf * (k1 + 1)
            denominator = tf + k1 * (1 - b + b * (doc_length / self.avg_doc_length))
            total += self.idf(term) * (numerator / denominator)
        return total
