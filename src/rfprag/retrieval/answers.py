"""Answer library: reusable question/answer pairs and their ranking."""

from __future__ import annotations

import re
import time
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence
from uuid import uuid4

from rfprag.config import PipelineConfig
from rfprag.errors import RecordNotFoundError, ValidationError
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import AnswerRecord, DuplicatePair, Project, RetrievalMatch, utcnow
from rfprag.retrieval.similarity import LexicalScorer, rank_matches, round_half_up
from rfprag.storage.repositories import AnswerRepository

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Company Information",
    "Technical Capabilities",
    "Security & Compliance",
    "Team & Experience",
    "Pricing & Terms",
    "References & Case Studies",
    "Implementation & Support",
    "General",
)


def _months_before(moment: datetime, months: int) -> datetime:
    year, month = divmod(moment.month - 1 - months, 12)
    target_year = moment.year + year
    target_month = month + 1
    day = moment.day
    # 31 Aug minus 6 months clamps to the last day of February.
    while True:
        try:
            return moment.replace(year=target_year, month=target_month, day=day)
        except ValueError:
            day -= 1


def _slug(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Answer {field_name} must not be empty")
    return value.strip()


class AnswerLibraryIndex:
    """Ranks and maintains answer library records for each tenant."""

    def __init__(
        self,
        repository: AnswerRepository,
        *,
        scorer: LexicalScorer | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._repository = repository
        self._scorer = scorer or LexicalScorer()
        self._config = config or PipelineConfig()
        self._logger = get_logger("answers")

    def search(self, tenant_id: str, query: str, limit: int | None = None) -> list[RetrievalMatch[AnswerRecord]]:
        """Return records whose question covers more than 20% of the query's keywords."""

        start = time.perf_counter()
        records = self._load(tenant_id)
        query_tokens = self._scorer.query_tokens(query)
        if not query_tokens:
            return []
        scored = [
            RetrievalMatch(record=record, similarity=self._scorer.similarity(query, record.question))
            for record in records
        ]
        matches = rank_matches(
            scored,
            minimum=self._config.answer_min_similarity,
            limit=self._config.answer_search_limit if limit is None else limit,
        )
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval("answer_library", duration, len(matches))
        self._logger.info(
            "retrieval.complete",
            source="answer_library",
            tenant_id=tenant_id,
            candidates=len(records),
            match_count=len(matches),
            duration_seconds=duration,
        )
        return matches

    def find_duplicates(self, tenant_id: str, threshold: float | None = None) -> list[DuplicatePair]:
        limit = self._config.duplicate_threshold if threshold is None else threshold
        records = list(self._repository.list(tenant_id))
        pairs: list[DuplicatePair] = []
        for i, first in enumerate(records):
            for second in records[i + 1 :]:
                similarity = round_half_up(self._scorer.jaccard(first.answer, second.answer))
                if similarity >= limit:
                    pairs.append(DuplicatePair(first=first, second=second, similarity=similarity))
        return pairs

    def find_outdated(
        self,
        tenant_id: str,
        months_threshold: int | None = None,
        *,
        now: datetime | None = None,
    ) -> list[AnswerRecord]:
        months = self._config.outdated_months if months_threshold is None else months_threshold
        cutoff = _months_before(now or utcnow(), months)
        return [
            record
            for record in self._repository.list(tenant_id)
            if (record.last_used_at or record.created_at) < cutoff
        ]

    def create(
        self,
        tenant_id: str,
        *,
        question: str,
        answer: str,
        category: str | None = None,
        tags: Iterable[str] = (),
    ) -> AnswerRecord:
        record = AnswerRecord(
            id=f"answer_{uuid4().hex}",
            question=_require_text(question, "question"),
            answer=_require_text(answer, "answer"),
            category=category or "General",
            tags=frozenset(tag for tag in tags if tag),
        )
        return self._repository.save(tenant_id, record)

    def get(self, tenant_id: str, record_id: str) -> AnswerRecord:
        record = self._repository.get(tenant_id, record_id)
        if record is None:
            raise RecordNotFoundError(f"Answer not found: {record_id}")
        return record

    def list(self, tenant_id: str, *, category: str | None = None, limit: int | None = None) -> list[AnswerRecord]:
        records = list(self._repository.list(tenant_id))
        if category and category != "all":
            records = [record for record in records if record.category == category]
        if limit is not None:
            records = records[:limit]
        return records

    def update(self, tenant_id: str, record_id: str, **changes: object) -> AnswerRecord:
        current = self.get(tenant_id, record_id)
        allowed = {key: value for key, value in changes.items() if key in {"question", "answer", "category", "tags"}}
        for field_name in ("question", "answer"):
            if field_name in allowed:
                allowed[field_name] = _require_text(allowed[field_name], field_name)
        if "tags" in allowed:
            allowed["tags"] = frozenset(allowed["tags"])  # type: ignore[arg-type]
        updated = replace(current, updated_at=utcnow(), **allowed)
        return self._repository.save(tenant_id, updated)

    def delete(self, tenant_id: str, record_id: str) -> None:
        if not self._repository.delete(tenant_id, record_id):
            raise RecordNotFoundError(f"Answer not found: {record_id}")

    def bulk_delete(self, tenant_id: str, record_ids: Sequence[str]) -> int:
        return sum(1 for record_id in record_ids if self._repository.delete(tenant_id, record_id))

    def record_usage(self, tenant_id: str, record_id: str) -> AnswerRecord | None:
        return self._repository.increment_usage(tenant_id, record_id, utcnow())

    def filter(self, tenant_id: str, term: str) -> list[AnswerRecord]:
        """Case-insensitive substring filter over question, answer, category and tags."""

        needle = term.lower()
        return [
            record
            for record in self._repository.list(tenant_id)
            if needle in record.question.lower()
            or needle in record.answer.lower()
            or needle in record.category.lower()
            or any(needle in tag.lower() for tag in record.tags)
        ]

    def categories(self, tenant_id: str) -> list[str]:
        seen: dict[str, None] = {}
        for record in self._repository.list(tenant_id):
            if record.category:
                seen.setdefault(record.category, None)
        return list(seen)

    def import_from_project(self, tenant_id: str, project: Project) -> int:
        """Copy every approved, answered question of a project into the library."""

        imported = 0
        project_tag = _slug(project.name) if project.name else ""
        for section in project.sections:
            for question in section.questions:
                if question.status != "approved" or not question.text.strip():
                    continue
                if not (question.response or "").strip():
                    continue
                self.create(
                    tenant_id,
                    question=question.text,
                    answer=question.response,
                    category=section.name or "Imported",
                    tags=("imported", project_tag),
                )
                imported += 1
        self._logger.info("answers.imported", tenant_id=tenant_id, project_id=project.id, imported=imported)
        return imported

    def _load(self, tenant_id: str) -> Sequence[AnswerRecord]:
        try:
            return self._repository.list(tenant_id)
        except Exception as exc:
            PipelineMetrics.observe_retrieval_failure("answer_library")
            self._logger.warning("retrieval.unavailable", source="answer_library", tenant_id=tenant_id, detail=str(exc))
            return []
