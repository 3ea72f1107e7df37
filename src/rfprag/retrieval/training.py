"""Training examples harvested from won proposals."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Sequence
from uuid import uuid4

from rfprag.config import PipelineConfig
from rfprag.errors import ProjectNotWonError, RecordNotFoundError
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import Project, RetrievalMatch, TrainingExample, utcnow
from rfprag.retrieval.similarity import LexicalScorer, rank_matches
from rfprag.storage.repositories import TrainingRepository


@dataclass(frozen=True)
class TrainingStats:
    total_examples: int
    categories: dict[str, int]
    recent_count: int
    top_categories: tuple[tuple[str, int], ...]


class TrainingExampleStore:
    """Stores winning responses and ranks them as style context for new questions."""

    def __init__(
        self,
        repository: TrainingRepository,
        *,
        scorer: LexicalScorer | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._repository = repository
        self._scorer = scorer or LexicalScorer()
        self._config = config or PipelineConfig()
        self._logger = get_logger("training")

    def relevant(self, tenant_id: str, query: str, max_count: int | None = None) -> list[RetrievalMatch[TrainingExample]]:
        """Return examples whose question has Jaccard similarity above 10 with the query."""

        start = time.perf_counter()
        examples = self._load(tenant_id)
        scored = [
            RetrievalMatch(record=example, similarity=self._scorer.relevance(query, example.question_text))
            for example in examples
        ]
        matches = rank_matches(
            scored,
            minimum=self._config.training_min_similarity,
            limit=self._config.training_max_examples if max_count is None else max_count,
        )
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval("training_examples", duration, len(matches))
        self._logger.info(
            "retrieval.complete",
            source="training_examples",
            tenant_id=tenant_id,
            candidates=len(examples),
            match_count=len(matches),
            duration_seconds=duration,
        )
        return matches

    def store(
        self,
        tenant_id: str,
        *,
        question_text: str,
        winning_response: str,
        category: str | None = None,
        project_id: str | None = None,
        project_name: str | None = None,
        tags: Iterable[str] = (),
        contract_value: float | None = None,
    ) -> TrainingExample:
        example = TrainingExample(
            id=f"example_{uuid4().hex}",
            question_text=question_text,
            winning_response=winning_response,
            category=category or "general",
            source_project_id=project_id,
            source_project_name=project_name,
            tags=frozenset(tags),
            contract_value=contract_value,
        )
        return self._repository.add(tenant_id, example)

    def list(self, tenant_id: str) -> Sequence[TrainingExample]:
        return self._repository.list(tenant_id)

    def delete(self, tenant_id: str, example_id: str) -> None:
        if not self._repository.delete(tenant_id, example_id):
            raise RecordNotFoundError(f"Training example not found: {example_id}")

    def extract_from_project(self, tenant_id: str, project: Project) -> int:
        if project.outcome != "won":
            raise ProjectNotWonError(f"Project {project.id} is not marked as won")
        extracted = 0
        for section in project.sections:
            for question in section.questions:
                if not question.response or len(question.response) <= self._config.training_min_response_length:
                    continue
                self.store(
                    tenant_id,
                    question_text=question.text,
                    winning_response=question.response,
                    category=section.name or "general",
                    project_id=project.id,
                    project_name=project.name,
                )
                extracted += 1
        self._logger.info("training.extracted", tenant_id=tenant_id, project_id=project.id, extracted=extracted)
        return extracted

    def stats(self, tenant_id: str, *, now: datetime | None = None) -> TrainingStats:
        examples = self._repository.list(tenant_id)
        cutoff = (now or utcnow()) - timedelta(days=30)
        categories = Counter(example.category or "general" for example in examples)
        recent = sum(1 for example in examples if example.created_at > cutoff)
        return TrainingStats(
            total_examples=len(examples),
            categories=dict(categories),
            recent_count=recent,
            top_categories=tuple(categories.most_common(5)),
        )

    @staticmethod
    def build_context(matches: Sequence[RetrievalMatch[TrainingExample]]) -> str | None:
        """Render matched examples as the winning-pattern block, or ``None``."""

        if not matches:
            return None
        lines = ["Here are examples of winning responses from similar questions:"]
        for index, match in enumerate(matches, start=1):
            example = match.record
            lines.append(f"--- Example {index} (from {example.source_project_name or 'previous win'}) ---")
            lines.append(f"Question: {example.question_text}")
            lines.append(f"Winning Response: {example.winning_response}")
        lines.append("--- End of examples ---")
        lines.append("Use these successful patterns to inform your response style and approach.")
        return "\n".join(lines)

    def _load(self, tenant_id: str) -> Sequence[TrainingExample]:
        try:
            return self._repository.list(tenant_id)
        except Exception as exc:
            PipelineMetrics.observe_retrieval_failure("training_examples")
            self._logger.warning("retrieval.unavailable", source="training_examples", tenant_id=tenant_id, detail=str(exc))
            return []
