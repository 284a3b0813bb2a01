"""Tokenization and domain synonym expansion shared by the lexical routes."""

from __future__ import annotations

import re

_NON_WORD = re.compile(r"[^\w\s]", flags=re.UNICODE)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "is", "are", "was", "were",
        "be", "been", "being", "have", "has", "had", "do", "does", "did",
        "will", "would", "could", "should", "may", "might", "must",
        "that", "this", "these", "those", "what", "which", "who", "whom",
        "to", "of", "in", "for", "on", "with", "at", "by", "from", "as",
        "into", "through", "during", "before", "after", "above", "below",
        "it", "its", "my", "your", "his", "her", "their", "our", "we",
        "you", "they", "i", "me", "him", "them", "us",
    }
)

# Merchant-services vocabulary: term -> synonyms. Lookup is symmetric, see
# `expand_query`.
DOMAIN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "residual": ("commission", "revenue share", "split", "recurring income", "passive income"),
    "merchant": ("client", "business", "account", "customer", "store"),
    "processor": ("gateway", "acquirer", "iso", "payment provider", "acquiring bank"),
    "rate": ("pricing", "cost", "fee", "percentage", "margin"),
    "chargeback": ("dispute", "reversal", "claim", "retrieval", "cb"),
    "underwriting": ("approval", "risk assessment", "vetting", "boarding"),
    "pci": ("compliance", "security", "dss", "data security"),
    "terminal": ("pos", "reader", "device", "machine", "hardware"),
    "interchange": ("ic", "card network fees", "association fees", "passthrough"),
    "volume": ("processing", "sales", "transactions", "throughput"),
    "mid": ("merchant id", "account number", "merchant identifier"),
    "dba": ("doing business as", "trade name", "business name"),
    "emv": ("chip", "smart card", "contact", "dip"),
    "nfc": ("tap", "contactless", "apple pay", "google pay", "mobile wallet"),
}

# Reverse lookups match single tokens only. Multi-word synonyms ("merchant id",
# "apple pay") and ones tokenize() drops for length ("ic", "cb") never match
# and only flow forward, as added expansion text.
_REVERSE_SYNONYMS: dict[str, tuple[str, ...]] = {}
for _term, _synonyms in DOMAIN_SYNONYMS.items():
    for _synonym in _synonyms:
        _REVERSE_SYNONYMS[_synonym] = _REVERSE_SYNONYMS.get(_synonym, ()) + (_term,)


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, drop short tokens and stop words."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [
        token
        for token in cleaned.split()
        if len(token) > 2 and token not in STOP_WORDS
    ]


def expand_query(query: str) -> str:
    """Add synonyms (and the terms they are synonyms of) to the query terms.

    Order is first-seen so the expansion is deterministic.
    """
    terms = tokenize(query)
    expanded: dict[str, None] = dict.fromkeys(terms)
    for term in terms:
        for synonym in DOMAIN_SYNONYMS.get(term, ()):
            expanded.setdefault(synonym, None)
        for key in _REVERSE_SYNONYMS.get(term, ()):
            expanded.setdefault(key, None)
    return " ".join(expanded)
