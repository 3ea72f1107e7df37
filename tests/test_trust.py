from __future__ import annotations

from rfprag.models import AnswerRecord, KnowledgeChunk, RetrievalMatch
from rfprag.services.trust import HIGH_CONFIDENCE, MANUAL_REVIEW, REVIEW_RECOMMENDED, TrustScorer


def _answer(similarity: float) -> RetrievalMatch[AnswerRecord]:
    return RetrievalMatch(record=AnswerRecord(id="a", question="q", answer="a"), similarity=similarity)


def _chunks(count: int) -> list[RetrievalMatch[KnowledgeChunk]]:
    return [
        RetrievalMatch(record=KnowledgeChunk(id=f"c{i}", text="t", source_document="doc"), similarity=50.0)
        for i in range(count)
    ]


def test_base_score_without_evidence():
    assert TrustScorer().score([], []) == 55


def test_answer_term_uses_top_similarity():
    assert TrustScorer().score([_answer(45.0)], []) == 70
    assert TrustScorer().score([_answer(90.0)], []) == 80


def test_chunk_term_and_corroboration_bonus():
    scorer = TrustScorer()
    assert scorer.score([], _chunks(3)) == 70
    assert scorer.score([_answer(45.0)], _chunks(1)) == 85


def test_score_is_clamped_once_at_95():
    assert TrustScorer().score([_answer(100.0)], _chunks(10)) == 95


def test_score_never_decreases_with_more_chunks():
    scorer = TrustScorer()
    scores = [scorer.score([_answer(45.0)], _chunks(count)) for count in range(4)]
    assert scores == sorted(scores)
    assert max(scores) <= 95


def test_direct_reuse_score():
    scorer = TrustScorer()
    assert scorer.direct_reuse_score(85.0) == 91
    assert scorer.direct_reuse_score(70.0) == 88
    assert scorer.direct_reuse_score(100.0) == 95


def test_badges():
    scorer = TrustScorer()
    assert scorer.badge(91) == HIGH_CONFIDENCE
    assert scorer.badge(60) == REVIEW_RECOMMENDED
    assert scorer.badge(40) == MANUAL_REVIEW
    assert scorer.template_score() == 50


def test_half_points_round_up():
    scorer = TrustScorer()
    assert scorer.direct_reuse_score(90.0) == 93
    assert scorer.direct_reuse_score(70.0) == 88
    assert scorer.score([_answer(34.5)], []) == 67
    assert scorer.score([_answer(37.5)], []) == 68
