"""Pydantic models for the RFPRAG API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rfprag.models import AnswerRecord, BatchItemResult, GenerationResult, SourceReference

Tone = Literal["formal", "friendly", "professional"]


class AnswerCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(..., min_length=1, description="Question the stored answer responds to")
    answer: str = Field(..., min_length=1, description="Reusable answer text")
    category: Optional[str] = Field(default=None, description="Library category, defaults to General")
    tags: List[str] = Field(default_factory=list)


class AnswerModel(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    tags: List[str]
    usage_count: int
    last_used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AnswerRecord) -> "AnswerModel":
        return cls(
            id=record.id,
            question=record.question,
            answer=record.answer,
            category=record.category,
            tags=sorted(record.tags),
            usage_count=record.usage_count,
            last_used_at=record.last_used_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AnswerListResponse(BaseModel):
    answers: List[AnswerModel]
    categories: List[str]


class DuplicateModel(BaseModel):
    first_id: str
    second_id: str
    similarity: float = Field(..., ge=0, le=100)


class KnowledgeDocumentRequest(BaseModel):
    source_document: str = Field(..., min_length=1, description="Document name the chunks belong to")
    texts: List[str] = Field(..., min_length=1, description="Pre-split chunk texts, in document order")


class KnowledgeDocumentResponse(BaseModel):
    source_document: str
    chunk_count: int = Field(..., ge=0)


class KnowledgeStatsResponse(BaseModel):
    total_chunks: int
    documents: List[str]


class ProjectQuestionModel(BaseModel):
    text: str
    response: str = ""
    status: str = "pending"


class ProjectSectionModel(BaseModel):
    name: str = ""
    questions: List[ProjectQuestionModel] = Field(default_factory=list)


class ProjectModel(BaseModel):
    id: str
    name: str
    outcome: Optional[str] = None
    sections: List[ProjectSectionModel] = Field(default_factory=list)


class TrainingExtractResponse(BaseModel):
    project_id: str
    extracted: int


class GenerateRequest(BaseModel):
    question: str = Field(..., description="RFP question to answer")
    project_context: Optional[str] = Field(default=None, description="Free-text description of the bid")
    tone: Tone = "professional"


class SourceModel(BaseModel):
    kind: str
    label: str
    record_id: Optional[str] = None
    similarity: Optional[float] = None
    count: int = 1
    documents: List[str] = Field(default_factory=list)

    @classmethod
    def from_reference(cls, source: SourceReference) -> "SourceModel":
        return cls(
            kind=source.kind.value,
            label=source.label,
            record_id=source.record_id,
            similarity=source.similarity,
            count=source.count,
            documents=list(source.documents),
        )


class GenerateResponse(BaseModel):
    response_text: str
    trust_score: int = Field(..., ge=0, le=100)
    badge: str
    outcome: str
    sources: List[SourceModel]
    used_answer_library: bool
    used_knowledge_library: bool
    used_generator: bool

    @classmethod
    def from_result(cls, result: GenerationResult, badge: str) -> "GenerateResponse":
        return cls(
            response_text=result.response_text,
            trust_score=result.trust_score,
            badge=badge,
            outcome=result.outcome.value,
            sources=[SourceModel.from_reference(source) for source in result.sources],
            used_answer_library=result.used_answer_library,
            used_knowledge_library=result.used_knowledge_library,
            used_generator=result.used_generator,
        )


class BatchQuestionModel(BaseModel):
    text: str
    section_index: int = Field(default=0, ge=0)
    question_index: int = Field(default=0, ge=0)


class BatchGenerateRequest(BaseModel):
    questions: List[BatchQuestionModel] = Field(..., min_length=1)
    project_context: Optional[str] = None
    tone: Tone = "professional"


class BatchItemModel(BaseModel):
    section_index: int
    question_index: int
    success: bool
    response_text: Optional[str] = None
    trust_score: Optional[int] = None
    outcome: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1

    @classmethod
    def from_item(cls, item: BatchItemResult) -> "BatchItemModel":
        return cls(
            section_index=item.section_index,
            question_index=item.question_index,
            success=item.success,
            response_text=item.response_text,
            trust_score=item.trust_score,
            outcome=item.outcome.value if item.outcome else None,
            error=item.error,
            attempts=item.attempts,
        )


class BatchGenerateResponse(BaseModel):
    results: List[BatchItemModel]
    total_processed: int
    success_count: int
    failure_count: int
    skipped_count: int
