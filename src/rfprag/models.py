"""Shared domain models used across the RFPRAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, Sequence, TypeVar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnswerRecord:
    """A reusable question/answer pair held in the answer library."""

    id: str
    question: str
    answer: str
    category: str = "General"
    tags: frozenset[str] = field(default_factory=frozenset)
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class KnowledgeChunk:
    """Bounded excerpt of an ingested document."""

    id: str
    text: str
    source_document: str
    chunk_index: int = 0
    total_chunks: int = 1
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TrainingExample:
    """Question/answer pair harvested from a won contract."""

    id: str
    question_text: str
    winning_response: str
    category: str = "general"
    source_project_id: str | None = None
    source_project_name: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    tags: frozenset[str] = field(default_factory=frozenset)
    contract_value: float | None = None


RecordT = TypeVar("RecordT", AnswerRecord, KnowledgeChunk, TrainingExample)


@dataclass(frozen=True)
class RetrievalMatch(Generic[RecordT]):
    """A record paired with its similarity to the query (0-100)."""

    record: RecordT
    similarity: float


@dataclass(frozen=True)
class DuplicatePair:
    first: AnswerRecord
    second: AnswerRecord
    similarity: float


class SourceKind(str, Enum):
    ANSWER_LIBRARY = "answer_library"
    KNOWLEDGE_LIBRARY = "knowledge_library"
    TRAINING_EXAMPLES = "training_examples"
    TEMPLATE = "template"


@dataclass(frozen=True)
class SourceReference:
    """Provenance descriptor attached to a generated answer."""

    kind: SourceKind
    label: str
    record_id: str | None = None
    similarity: float | None = None
    count: int = 1
    documents: tuple[str, ...] = ()


class CascadeOutcome(str, Enum):
    DIRECT_REUSE = "direct_reuse"
    CONTEXT_REUSE = "context_reuse"
    CONTEXT_SYNTHESIS = "context_synthesis"
    EXTRACTIVE_FALLBACK = "extractive_fallback"
    TEMPLATE_FALLBACK = "template_fallback"


@dataclass(frozen=True)
class GenerationResult:
    """Answer produced for a single question, with provenance and trust."""

    response_text: str
    sources: Sequence[SourceReference]
    trust_score: int
    outcome: CascadeOutcome
    used_answer_library: bool = False
    used_knowledge_library: bool = False
    used_generator: bool = False


@dataclass(frozen=True)
class ProjectQuestion:
    text: str
    response: str = ""
    status: str = "pending"


@dataclass(frozen=True)
class ProjectSection:
    name: str
    questions: Sequence[ProjectQuestion] = ()


@dataclass(frozen=True)
class Project:
    """Minimal view of a proposal project used for imports and extraction."""

    id: str
    name: str
    sections: Sequence[ProjectSection] = ()
    outcome: str | None = None


@dataclass(frozen=True)
class BatchQuestion:
    text: str
    section_index: int = 0
    question_index: int = 0


@dataclass(frozen=True)
class BatchItemResult:
    section_index: int
    question_index: int
    success: bool
    response_text: str | None = None
    trust_score: int | None = None
    outcome: CascadeOutcome | None = None
    error: str | None = None
    attempts: int = 1


@dataclass(frozen=True)
class BatchReport:
    items: Sequence[BatchItemResult]
    requested_count: int

    @property
    def total_processed(self) -> int:
        return len(self.items)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for item in self.items if not item.success)

    @property
    def skipped_count(self) -> int:
        return self.requested_count - len(self.items)
