"""Batch answering with grouping, inter-group delays and a single rate-limit retry."""

from __future__ import annotations

import time
from typing import Callable, Sequence

from rfprag.config import PipelineConfig
from rfprag.errors import RateLimitedError
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import BatchItemResult, BatchQuestion, BatchReport, GenerationResult
from rfprag.security.rate_limit import RateLimiter
from rfprag.services.orchestrator import ResponseOrchestrator


class BatchCoordinator:
    """Answers a list of questions sequentially in fixed-size groups."""

    def __init__(
        self,
        orchestrator: ResponseOrchestrator,
        *,
        rate_limiter: RateLimiter | None = None,
        config: PipelineConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._rate_limiter = rate_limiter
        self._config = config or PipelineConfig()
        self._sleep = sleep
        self._logger = get_logger("batch")

    def run(
        self,
        tenant_id: str,
        questions: Sequence[BatchQuestion],
        *,
        rate_budget: int | None = None,
        project_context: str | None = None,
        tone: str = "professional",
    ) -> BatchReport:
        budget = self._reserve(tenant_id, len(questions), rate_budget)
        attempted = list(questions[: max(0, min(len(questions), budget))])
        group_size = max(1, self._config.batch_group_size)
        groups = [attempted[i : i + group_size] for i in range(0, len(attempted), group_size)]
        items: list[BatchItemResult] = []
        for group_index, group in enumerate(groups):
            if group_index > 0:
                self._sleep(self._config.batch_group_delay_ms / 1000)
            self._logger.info("batch.group", tenant_id=tenant_id, group=group_index, size=len(group))
            for question in group:
                items.append(self._answer_one(tenant_id, question, project_context=project_context, tone=tone))
        report = BatchReport(items=tuple(items), requested_count=len(questions))
        PipelineMetrics.observe_batch(item.success for item in report.items)
        self._logger.info(
            "batch.complete",
            tenant_id=tenant_id,
            requested=report.requested_count,
            total_processed=report.total_processed,
            success_count=report.success_count,
            failure_count=report.failure_count,
        )
        return report

    def _reserve(self, tenant_id: str, requested: int, rate_budget: int | None) -> int:
        if rate_budget is not None:
            return rate_budget
        if self._rate_limiter is None:
            return requested
        return self._rate_limiter.consume_batch(tenant_id, requested).allowed_count

    def _answer_one(
        self,
        tenant_id: str,
        question: BatchQuestion,
        *,
        project_context: str | None,
        tone: str,
    ) -> BatchItemResult:
        attempts = 1
        try:
            try:
                result = self._ask(tenant_id, question, project_context, tone)
            except RateLimitedError:
                self._logger.warning(
                    "batch.retry",
                    tenant_id=tenant_id,
                    section_index=question.section_index,
                    question_index=question.question_index,
                    cooldown_ms=self._config.batch_retry_cooldown_ms,
                )
                self._sleep(self._config.batch_retry_cooldown_ms / 1000)
                attempts = 2
                result = self._ask(tenant_id, question, project_context, tone)
        except Exception as exc:
            self._logger.warning(
                "batch.item_failed",
                tenant_id=tenant_id,
                section_index=question.section_index,
                question_index=question.question_index,
                error_type=type(exc).__name__,
                detail=str(exc),
            )
            return BatchItemResult(
                section_index=question.section_index,
                question_index=question.question_index,
                success=False,
                error=str(exc) or type(exc).__name__,
                attempts=attempts,
            )
        return BatchItemResult(
            section_index=question.section_index,
            question_index=question.question_index,
            success=True,
            response_text=result.response_text,
            trust_score=result.trust_score,
            outcome=result.outcome,
            attempts=attempts,
        )

    def _ask(
        self,
        tenant_id: str,
        question: BatchQuestion,
        project_context: str | None,
        tone: str,
    ) -> GenerationResult:
        return self._orchestrator.answer(
            tenant_id,
            question.text,
            project_context=project_context,
            tone=tone,
            raise_rate_limit=True,
        )
