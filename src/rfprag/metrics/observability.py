"""Observability helpers for RFPRAG."""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Iterable

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "rfprag") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    retrieval_latency = Histogram(
        "rfprag_retrieval_duration_seconds",
        "Time spent ranking records from one source.",
        ["source"],
        buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
    )
    retrieved_match_count = Histogram(
        "rfprag_retrieved_match_count",
        "Number of matches returned by one source.",
        ["source"],
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    retrieval_failures = Counter(
        "rfprag_retrieval_failures_total",
        "Lookups that failed and were treated as empty.",
        ["source"],
    )
    generation_latency = Histogram(
        "rfprag_generation_duration_seconds",
        "Time spent waiting on the external generator.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
    )
    generation_failures = Counter(
        "rfprag_generation_failures_total",
        "External generator failures by kind.",
        ["kind"],
    )
    cascade_outcomes = Counter(
        "rfprag_cascade_outcomes_total",
        "Answers produced per cascade state.",
        ["outcome"],
    )
    trust_score = Histogram(
        "rfprag_trust_score",
        "Distribution of trust scores assigned to answers.",
        buckets=(10, 25, 50, 60, 70, 80, 90, 95, 100),
    )
    batch_items = Counter(
        "rfprag_batch_items_total",
        "Batch items by final status.",
        ["status"],
    )
    tenant_chunk_count = Gauge(
        "rfprag_tenant_chunk_count",
        "Number of knowledge chunks per tenant.",
        ["tenant_id"],
    )

    @classmethod
    def observe_retrieval(cls, source: str, duration_seconds: float, match_count: int) -> None:
        cls.retrieval_latency.labels(source=source).observe(duration_seconds)
        cls.retrieved_match_count.labels(source=source).observe(match_count)

    @classmethod
    def observe_retrieval_failure(cls, source: str) -> None:
        cls.retrieval_failures.labels(source=source).inc()

    @classmethod
    def observe_generation(cls, duration_seconds: float) -> None:
        cls.generation_latency.observe(duration_seconds)

    @classmethod
    def observe_generation_failure(cls, kind: str) -> None:
        cls.generation_failures.labels(kind=kind).inc()

    @classmethod
    def observe_answer(cls, outcome: str, trust_score: int) -> None:
        cls.cascade_outcomes.labels(outcome=outcome).inc()
        cls.trust_score.observe(trust_score)

    @classmethod
    def observe_batch(cls, statuses: Iterable[bool]) -> None:
        for success in statuses:
            cls.batch_items.labels(status="success" if success else "failure").inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
