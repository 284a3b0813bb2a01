import pytest

from isohub_agent.config import RetrievalConfig
from isohub_agent.retrieval.fusion import ExactMatchReranker, FusionLayer, reciprocal_rank_fusion
from isohub_agent.retrieval.similarity import BM25Scorer, cosine_similarity
from isohub_agent.retrieval.text import expand_query, tokenize
from isohub_agent.types import SearchResult


def _result(entry_id: int, match_type: str, question: str = "q", answer: str = "a") -> SearchResult:
    return SearchResult(
        entry_id=entry_id,
        question=question,
        answer=answer,
        category="general",
        score=1.0,
        match_type=match_type,
    )


def test_tokenize_drops_stop_words_short_tokens_and_punctuation() -> None:
    assert tokenize("What is the BPS on a $10k account?") == ["bps", "10k", "account"]


def test_expand_query_adds_synonyms_in_both_directions() -> None:
    expanded = expand_query("merchant dispute").split()

    assert expanded[:2] == ["merchant", "dispute"]
    assert "client" in expanded
    # "dispute" is a synonym of "chargeback", so the reverse lookup adds it.
    assert "chargeback" in expanded


def test_expand_query_without_known_terms_is_just_tokens() -> None:
    assert expand_query("explain bps") == "explain bps"


def test_reverse_lookup_matches_single_tokens_only() -> None:
    assert "nfc" in expand_query("tap").split()
    assert expand_query("cb") == ""
    assert expand_query("apple pay") == "apple pay"


def test_bm25_zero_for_document_without_query_terms() -> None:
    corpus = [tokenize("basis points measure pricing"), tokenize("chargeback dispute process")]
    scorer = BM25Scorer(corpus)

    assert scorer.score(["basis"], corpus[1]) == 0.0
    assert scorer.score(["basis"], corpus[0]) > 0.0


def test_bm25_rare_terms_weigh_more_than_common_terms() -> None:
    corpus = [
        tokenize("merchant pricing residual"),
        tokenize("merchant pricing"),
        tokenize("merchant underwriting"),
    ]
    scorer = BM25Scorer(corpus)

    assert scorer.idf("residual") > scorer.idf("merchant")


def test_bm25_average_length_fixed_or_computed() -> None:
    corpus = [["alpha", "beta"], ["gamma", "delta", "epsilon", "zeta"]]

    assert BM25Scorer(corpus).avg_doc_length == 100.0
    computed = BM25Scorer(corpus, RetrievalConfig(avg_doc_length=None))
    assert computed.avg_doc_length == pytest.approx(3.0)


def test_cosine_similarity_symmetric_and_zero_for_zero_vector() -> None:
    a = [0.2, 0.5, -0.1]
    b = [0.4, 0.1, 0.3]

    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert cosine_similarity([0.0, 0.0, 0.0], b) == 0.0
    assert cosine_similarity(a, [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity(a, a) == pytest.approx(1.0)


def test_cosine_similarity_mismatched_dimensions_is_zero() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0


def test_rrf_entry_in_both_lists_beats_either_list_alone() -> None:
    vector = [_result(1, "vector"), _result(2, "vector")]
    keyword = [_result(1, "keyword")]

    fused = reciprocal_rank_fusion([(vector, 0.6), (keyword, 0.4)], k=60)
    by_id = {item.entry_id: item for item in fused}

    assert by_id[1].score == pytest.approx(0.6 / 61 + 0.4 / 61)
    assert by_id[1].score > 0.6 / 61
    assert by_id[1].score > 0.4 / 61
    assert by_id[1].match_type == "hybrid"
    assert by_id[2].match_type == "vector"
    assert [item.entry_id for item in fused] == [1, 2]


def test_exact_match_reranker_boosts_question_overlap() -> None:
    reranker = ExactMatchReranker()
    candidates = [
        SearchResult(1, "Holiday schedule", "Offices close on holidays", "hr", 0.01, "vector"),
        SearchResult(2, "What is interchange?", "Interchange is a card network fee", "pricing", 0.01, "vector"),
    ]

    ranked = reranker.rerank("interchange", candidates)

    assert ranked[0].entry_id == 2
    # Term hits (0.3 + 0.1) plus both phrase bonuses (0.5 + 0.3).
    assert ranked[0].score == pytest.approx(0.01 * 2.2)
    assert ranked[1].score == pytest.approx(0.01)


def test_fusion_layer_truncates_to_limit() -> None:
    layer = FusionLayer(RetrievalConfig())
    vector = [_result(i, "vector") for i in range(1, 8)]

    assert len(layer.fuse("anything", vector, [], limit=3)) == 3
