"""Heuristic trust scores for generated answers."""

from __future__ import annotations

from typing import Sequence

from rfprag.config import PipelineConfig
from rfprag.models import AnswerRecord, KnowledgeChunk, RetrievalMatch
from rfprag.retrieval.similarity import round_half_up

HIGH_CONFIDENCE = "High Confidence"
REVIEW_RECOMMENDED = "Review Recommended"
MANUAL_REVIEW = "Manual Review Required"


class TrustScorer:
    """Additive trust formula over the evidence that backed an answer.

    The score is ``base + answer term + chunk term + corroboration bonus``,
    clamped once at the end. Consumers key display badges off the result, so
    the weights live in :class:`PipelineConfig` rather than here.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self._config = config or PipelineConfig()

    def score(
        self,
        answer_matches: Sequence[RetrievalMatch[AnswerRecord]],
        knowledge_chunks: Sequence[RetrievalMatch[KnowledgeChunk]],
    ) -> int:
        config = self._config
        total = config.trust_base
        if answer_matches:
            top = max(match.similarity for match in answer_matches)
            total += min(config.trust_answer_cap, top / config.trust_answer_divisor)
        if knowledge_chunks:
            total += min(config.trust_chunk_cap, len(knowledge_chunks) * config.trust_chunk_weight)
        if answer_matches and knowledge_chunks:
            total += config.trust_corroboration_bonus
        return round_half_up(max(0.0, min(float(config.trust_max), total)))

    def direct_reuse_score(self, similarity: float) -> int:
        config = self._config
        return min(config.trust_max, config.trust_direct_base + round_half_up(similarity / config.trust_direct_divisor))

    def template_score(self) -> int:
        return self._config.trust_template

    def badge(self, score: int) -> str:
        if score >= self._config.trust_high_badge:
            return HIGH_CONFIDENCE
        if score >= self._config.trust_review_badge:
            return REVIEW_RECOMMENDED
        return MANUAL_REVIEW
