from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rfprag.models import AnswerRecord, RetrievalMatch
from rfprag.retrieval.similarity import LexicalScorer, TokenizerConfig, rank_matches, tokenize


def _record(record_id: str, *, created_at: datetime) -> AnswerRecord:
    return AnswerRecord(id=record_id, question="q", answer="a", created_at=created_at)


def test_tokenize_strips_punctuation_and_short_tokens():
    tokens = tokenize("Data at rest: AES, encrypted!", TokenizerConfig(min_length=4, use_stop_words=False))
    assert tokens == ["data", "rest", "encrypted"]


def test_hyphenated_terms_stay_whole():
    config = TokenizerConfig(min_length=4, use_stop_words=False)
    assert tokenize("Third-party SOC-2 data-at-rest AES-256", config) == ["thirdparty", "soc2", "dataatrest", "aes256"]
    scorer = LexicalScorer()
    assert scorer.similarity("third-party audits", "Do you commission third party audits?") == 50.0


def test_identical_text_scores_100():
    scorer = LexicalScorer()
    text = "What security certifications does your organization hold?"
    assert scorer.similarity(text, text) == 100.0
    assert scorer.jaccard(text, text) == 100.0


def test_no_shared_tokens_scores_zero():
    scorer = LexicalScorer()
    assert scorer.similarity("encryption standards", "pricing model") == 0.0
    assert scorer.jaccard("encryption standards", "pricing model") == 0.0


def test_similarity_is_query_coverage():
    scorer = LexicalScorer()
    assert scorer.similarity("encryption backups", "nightly encryption") == 50.0


def test_query_without_qualifying_tokens_scores_zero():
    scorer = LexicalScorer()
    assert scorer.similarity("how do you", "how do you do it") == 0.0
    assert scorer.similarity("", "anything") == 0.0


def test_similarity_stays_in_bounds():
    scorer = LexicalScorer()
    samples = ["", "a", "security security security", "Security policy, audits & pentests", "zzz yyy"]
    for first in samples:
        for second in samples:
            assert 0.0 <= scorer.similarity(first, second) <= 100.0
            assert 0.0 <= scorer.jaccard(first, second) <= 100.0


def test_stop_words_are_injected():
    scorer = LexicalScorer(frozenset({"security"}))
    assert scorer.similarity("security policy", "policy") == 100.0
    assert "security" not in scorer.query_tokens("security policy")


def test_keywords_are_long_and_deduplicated():
    scorer = LexicalScorer()
    assert scorer.keywords("Encryption encryption keys rotate") == ["encryption", "rotate"]


def test_rank_matches_orders_ties_by_recency_then_id():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    older = _record("b", created_at=now - timedelta(days=1))
    newer = _record("c", created_at=now)
    same_time = _record("a", created_at=now)
    matches = [
        RetrievalMatch(record=older, similarity=50.0),
        RetrievalMatch(record=newer, similarity=50.0),
        RetrievalMatch(record=same_time, similarity=50.0),
        RetrievalMatch(record=_record("d", created_at=now), similarity=90.0),
    ]
    ranked = rank_matches(matches, minimum=20, limit=None)
    assert [match.record.id for match in ranked] == ["d", "a", "c", "b"]


def test_rank_matches_threshold_is_exclusive_and_limited():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    matches = [RetrievalMatch(record=_record(str(i), created_at=now), similarity=float(s)) for i, s in enumerate([20, 21, 80, 60])]
    ranked = rank_matches(matches, minimum=20, limit=2)
    assert [match.similarity for match in ranked] == [80.0, 60.0]
