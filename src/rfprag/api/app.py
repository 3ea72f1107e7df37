"""FastAPI application exposing RFPRAG services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rfprag.api.schemas import (
    AnswerCreateRequest,
    AnswerListResponse,
    AnswerModel,
    BatchGenerateRequest,
    BatchGenerateResponse,
    BatchItemModel,
    DuplicateModel,
    GenerateRequest,
    GenerateResponse,
    KnowledgeDocumentRequest,
    KnowledgeDocumentResponse,
    KnowledgeStatsResponse,
    ProjectModel,
    TrainingExtractResponse,
)
from rfprag.config import Settings, get_settings
from rfprag.errors import (
    GuardRejectionError,
    ProjectNotWonError,
    RateLimitExceededError,
    RecordNotFoundError,
    ValidationError,
)
from rfprag.metrics.observability import (
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
)
from rfprag.models import BatchQuestion, Project, ProjectQuestion, ProjectSection
from rfprag.retrieval import AnswerLibraryIndex, KnowledgeChunkStore, LexicalScorer, TrainingExampleStore
from rfprag.security import PatternInjectionGuard, RateLimiter, SlidingWindowRateLimiter
from rfprag.services import BatchCoordinator, PromptBuilder, ResponseOrchestrator, TrustScorer, build_generator
from rfprag.services.prompts import PromptBuilderConfig
from rfprag.storage import (
    ChromaChunkRepository,
    ChunkRepository,
    InMemoryAnswerRepository,
    InMemoryChunkRepository,
    InMemoryTrainingRepository,
)


@dataclass(frozen=True)
class AppDependencies:
    answers: AnswerLibraryIndex
    knowledge: KnowledgeChunkStore
    training: TrainingExampleStore
    orchestrator: ResponseOrchestrator
    batch: BatchCoordinator
    rate_limiter: RateLimiter


def _build_chunk_repository(settings: Settings) -> ChunkRepository:
    if settings.chunk_backend != "chroma":
        return InMemoryChunkRepository()
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaChunkRepository(
        settings.chroma_collection,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
    )


def _build_dependencies(settings: Settings) -> AppDependencies:
    config = settings.pipeline_config()
    scorer = LexicalScorer(settings.stop_words_set, keyword_min_length=config.keyword_min_length)
    answers = AnswerLibraryIndex(InMemoryAnswerRepository(), scorer=scorer, config=config)
    knowledge = KnowledgeChunkStore(_build_chunk_repository(settings), scorer=scorer, config=config)
    training = TrainingExampleStore(InMemoryTrainingRepository(), scorer=scorer, config=config)
    orchestrator = ResponseOrchestrator(
        answers,
        knowledge,
        training,
        build_generator(settings),
        guard=PatternInjectionGuard(),
        trust=TrustScorer(config),
        prompt_builder=PromptBuilder(PromptBuilderConfig(max_input_chars=config.max_prompt_input_chars)),
        scorer=scorer,
        config=config,
    )
    rate_limiter = SlidingWindowRateLimiter(
        settings.rate_limit_requests,
        burst=settings.rate_limit_burst,
        window_seconds=settings.rate_limit_window_seconds,
    )
    batch = BatchCoordinator(orchestrator, rate_limiter=rate_limiter, config=config)
    return AppDependencies(
        answers=answers,
        knowledge=knowledge,
        training=training,
        orchestrator=orchestrator,
        batch=batch,
        rate_limiter=rate_limiter,
    )


def _to_project(payload: ProjectModel) -> Project:
    return Project(
        id=payload.id,
        name=payload.name,
        outcome=payload.outcome,
        sections=tuple(
            ProjectSection(
                name=section.name,
                questions=tuple(
                    ProjectQuestion(text=question.text, response=question.response, status=question.status)
                    for question in section.questions
                ),
            )
            for section in payload.sections
        ),
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="RFPRAG API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def require_api_key(request: Request) -> None:
        expected = settings.api_key
        if not expected:
            return
        provided = request.headers.get("X-API-Key")
        if provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    def get_tenant(request: Request) -> str:
        return (request.headers.get("X-Tenant-ID") or "").strip() or settings.default_tenant

    def _error(request: Request, status_code: int, detail: str, **extra: object) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id()
        return JSONResponse(
            status_code=status_code,
            content={"detail": detail, "correlation_id": correlation_id, **extra},
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(GuardRejectionError)
    async def handle_guard_rejection(request: Request, exc: GuardRejectionError) -> JSONResponse:
        logger.warning(
            "security.rejected",
            correlation_id=getattr(request.state, "correlation_id", None),
            tenant_id=get_tenant(request),
            field=exc.field,
            reason=exc.reason,
        )
        return _error(request, status.HTTP_422_UNPROCESSABLE_ENTITY, exc.reason, field=exc.field)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        response = _error(request, status.HTTP_429_TOO_MANY_REQUESTS, str(exc), reset_in_ms=exc.reset_in_ms)
        response.headers["Retry-After"] = str(max(1, -(-exc.reset_in_ms // 1000)))
        return response

    @app.exception_handler(RecordNotFoundError)
    async def handle_not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(request, status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(ProjectNotWonError)
    async def handle_project_not_won(request: Request, exc: ProjectNotWonError) -> JSONResponse:
        return _error(request, status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def check_question_length(text: str) -> None:
        if len(text) > settings.max_question_chars:
            raise ValidationError(f"Question exceeds {settings.max_question_chars} characters")

    @app.post("/answers", response_model=AnswerModel, status_code=status.HTTP_201_CREATED)
    async def create_answer(
        payload: AnswerCreateRequest,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> AnswerModel:
        record = dep.answers.create(
            tenant_id,
            question=payload.question,
            answer=payload.answer,
            category=payload.category,
            tags=payload.tags,
        )
        return AnswerModel.from_record(record)

    @app.get("/answers", response_model=AnswerListResponse)
    async def list_answers(
        category: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> AnswerListResponse:
        if search:
            records = dep.answers.filter(tenant_id, search)
            if category and category != "all":
                records = [record for record in records if record.category == category]
            records = records[:limit] if limit is not None else records
        else:
            records = dep.answers.list(tenant_id, category=category, limit=limit)
        return AnswerListResponse(
            answers=[AnswerModel.from_record(record) for record in records],
            categories=dep.answers.categories(tenant_id),
        )

    @app.get("/answers/duplicates", response_model=List[DuplicateModel])
    async def answer_duplicates(
        threshold: float | None = None,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> List[DuplicateModel]:
        return [
            DuplicateModel(first_id=pair.first.id, second_id=pair.second.id, similarity=pair.similarity)
            for pair in dep.answers.find_duplicates(tenant_id, threshold)
        ]

    @app.get("/answers/outdated", response_model=List[AnswerModel])
    async def answer_outdated(
        months: int | None = None,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> List[AnswerModel]:
        return [AnswerModel.from_record(record) for record in dep.answers.find_outdated(tenant_id, months)]

    @app.delete("/answers/{answer_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_answer(
        answer_id: str,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> Response:
        dep.answers.delete(tenant_id, answer_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/knowledge/documents", response_model=KnowledgeDocumentResponse, status_code=status.HTTP_201_CREATED)
    def replace_knowledge_document(
        payload: KnowledgeDocumentRequest,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> KnowledgeDocumentResponse:
        chunks = dep.knowledge.replace_document(tenant_id, payload.source_document, payload.texts)
        if not chunks:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No non-empty text provided")
        return KnowledgeDocumentResponse(source_document=payload.source_document, chunk_count=len(chunks))

    @app.get("/knowledge/stats", response_model=KnowledgeStatsResponse)
    def knowledge_stats(
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> KnowledgeStatsResponse:
        stats = dep.knowledge.stats(tenant_id)
        return KnowledgeStatsResponse(total_chunks=stats.total_chunks, documents=list(stats.documents))

    @app.post("/training/extract", response_model=TrainingExtractResponse)
    async def extract_training(
        payload: ProjectModel,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> TrainingExtractResponse:
        extracted = dep.training.extract_from_project(tenant_id, _to_project(payload))
        return TrainingExtractResponse(project_id=payload.id, extracted=extracted)

    @app.post("/generate", response_model=GenerateResponse)
    def generate_answer(
        payload: GenerateRequest,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> GenerateResponse:
        check_question_length(payload.question)
        decision = dep.rate_limiter.check(tenant_id, "generate")
        if not decision.allowed:
            raise RateLimitExceededError("Rate limit exceeded", reset_in_ms=decision.reset_in_ms)
        result = dep.orchestrator.answer(
            tenant_id,
            payload.question,
            project_context=payload.project_context,
            tone=payload.tone,
        )
        return GenerateResponse.from_result(result, dep.orchestrator.trust_scorer.badge(result.trust_score))

    @app.post("/generate/batch", response_model=BatchGenerateResponse)
    def generate_batch(
        payload: BatchGenerateRequest,
        tenant_id: str = Depends(get_tenant),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> BatchGenerateResponse:
        if len(payload.questions) > settings.max_batch_questions:
            raise ValidationError(f"Batch exceeds {settings.max_batch_questions} questions")
        allowance = dep.rate_limiter.consume_batch(tenant_id, len(payload.questions))
        if not allowance.allowed:
            raise RateLimitExceededError("Rate limit exceeded for batch generation")
        questions = [
            BatchQuestion(text=item.text, section_index=item.section_index, question_index=item.question_index)
            for item in payload.questions
        ]
        report = dep.batch.run(
            tenant_id,
            questions,
            rate_budget=allowance.allowed_count,
            project_context=payload.project_context,
            tone=payload.tone,
        )
        return BatchGenerateResponse(
            results=[BatchItemModel.from_item(item) for item in report.items],
            total_processed=report.total_processed,
            success_count=report.success_count,
            failure_count=report.failure_count,
            skipped_count=report.skipped_count,
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from rfprag import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


app = create_app()
