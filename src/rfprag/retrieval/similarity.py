"""Lexical overlap similarity shared by every retrieval source."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from rfprag.config import DEFAULT_STOP_WORDS
from rfprag.models import RetrievalMatch

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass(frozen=True)
class TokenizerConfig:
    """Token filtering rules.

    ``min_length`` is the shortest token kept; ``use_stop_words`` toggles the
    stop-word filter.
    """

    min_length: int = 4
    use_stop_words: bool = True
    stop_words: frozenset[str] = DEFAULT_STOP_WORDS


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""

    return int(math.floor(value + 0.5))


def tokenize(text: str | None, config: TokenizerConfig) -> list[str]:
    """Lower-case, delete punctuation and split on whitespace, keeping order.

    Punctuation is removed rather than replaced, so hyphenated terms stay whole
    ("third-party" becomes ``thirdparty``).
    """

    if not text:
        return []
    cleaned = _NON_ALNUM.sub("", text.lower())
    tokens = []
    for token in cleaned.split():
        if len(token) < config.min_length:
            continue
        if config.use_stop_words and token in config.stop_words:
            continue
        tokens.append(token)
    return tokens


def coverage_score(query_tokens: Iterable[str], candidate_tokens: Iterable[str]) -> float:
    query_set = set(query_tokens)
    if not query_set:
        return 0.0
    overlap = len(query_set.intersection(candidate_tokens))
    return 100.0 * overlap / len(query_set)


def jaccard_score(first: Iterable[str], second: Iterable[str]) -> float:
    first_set, second_set = set(first), set(second)
    union = first_set | second_set
    if not union:
        return 0.0
    return 100.0 * len(first_set & second_set) / len(union)


class LexicalScorer:
    """Keyword overlap scorer with injected stop words.

    Four token views are used: ``query`` tokens (length > 3, stop words
    removed) for coverage ranking, ``duplicate`` tokens (length > 2, no stop
    words) for answer de-duplication, ``relevance`` tokens (length > 3, no stop
    words) for training example ranking, and ``keyword`` tokens (length > 4,
    stop words removed) for sentence extraction.
    """

    def __init__(self, stop_words: frozenset[str] = DEFAULT_STOP_WORDS, *, keyword_min_length: int = 5) -> None:
        self._query = TokenizerConfig(min_length=4, use_stop_words=True, stop_words=stop_words)
        self._duplicate = TokenizerConfig(min_length=3, use_stop_words=False, stop_words=stop_words)
        self._relevance = TokenizerConfig(min_length=4, use_stop_words=False, stop_words=stop_words)
        self._keyword = TokenizerConfig(min_length=keyword_min_length, use_stop_words=True, stop_words=stop_words)

    @property
    def stop_words(self) -> frozenset[str]:
        return self._query.stop_words

    def query_tokens(self, text: str | None) -> list[str]:
        return tokenize(text, self._query)

    def keywords(self, text: str | None) -> list[str]:
        seen: dict[str, None] = {}
        for token in tokenize(text, self._keyword):
            seen.setdefault(token, None)
        return list(seen)

    def similarity(self, query: str | None, candidate: str | None) -> float:
        """Share of the query's tokens found in the candidate, 0-100."""

        query_tokens = self.query_tokens(query)
        if not query_tokens:
            return 0.0
        return coverage_score(query_tokens, tokenize(candidate, self._query))

    def jaccard(self, first: str | None, second: str | None) -> float:
        return jaccard_score(tokenize(first, self._duplicate), tokenize(second, self._duplicate))

    def relevance(self, first: str | None, second: str | None) -> float:
        return jaccard_score(tokenize(first, self._relevance), tokenize(second, self._relevance))


def rank_matches(
    matches: Sequence[RetrievalMatch],
    *,
    minimum: float,
    limit: int | None,
) -> list[RetrievalMatch]:
    """Keep matches strictly above ``minimum`` ordered by similarity.

    Ties go to the most recently created record, then the lowest id.
    """

    kept = [match for match in matches if match.similarity > minimum]
    kept.sort(key=lambda match: match.record.id)
    kept.sort(key=lambda match: match.record.created_at, reverse=True)
    kept.sort(key=lambda match: match.similarity, reverse=True)
    if limit is not None:
        kept = kept[: max(0, limit)]
    return kept
