"""Response orchestration: the ordered answer cascade for a single question."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from rfprag.config import PipelineConfig
from rfprag.errors import GuardRejectionError, RateLimitedError, ValidationError
from rfprag.metrics.observability import PipelineMetrics, TimedSection, get_logger
from rfprag.models import (
    AnswerRecord,
    CascadeOutcome,
    GenerationResult,
    KnowledgeChunk,
    RetrievalMatch,
    SourceKind,
    SourceReference,
    TrainingExample,
)
from rfprag.retrieval.answers import AnswerLibraryIndex
from rfprag.retrieval.knowledge import KnowledgeChunkStore
from rfprag.retrieval.similarity import LexicalScorer
from rfprag.retrieval.training import TrainingExampleStore
from rfprag.security.guard import InjectionGuard, PatternInjectionGuard
from rfprag.services.generation import OfflineGenerator, TextGenerator, classify_error
from rfprag.services.prompts import PromptBuilder
from rfprag.services.trust import TrustScorer

SECURITY_TEMPLATE = (
    "Our organization maintains comprehensive security certifications including SOC 2 Type II compliance. "
    "We implement industry-leading security measures such as AES-256 encryption for data at rest and TLS 1.3 "
    "for data in transit. All employees undergo regular security awareness training, and we conduct annual "
    "third-party security audits.\n\n"
    "[Note: Please update this response with your specific certifications and security practices in the "
    "Answer Library.]"
)
EXPERIENCE_TEMPLATE = (
    "Our organization brings extensive experience in delivering enterprise-level solutions. Our team consists "
    "of seasoned professionals with deep domain expertise and a proven track record of successful "
    "implementations across multiple industries.\n\n"
    "[Note: Please add your specific company history and experience details to the Answer Library for more "
    "accurate responses.]"
)
TEAM_TEMPLATE = (
    "We maintain a highly qualified team of professionals with relevant industry certifications and extensive "
    "hands-on experience. Our organizational structure ensures dedicated resources for each engagement, with "
    "clear escalation paths and executive sponsorship.\n\n"
    "[Note: Add your team details to the Answer Library to personalize this response.]"
)
GENERIC_TEMPLATE = (
    "Our organization is well-positioned to meet this requirement. We have the necessary expertise, resources, "
    "and commitment to deliver exceptional results.\n\n"
    "[Note: No matching content found in Answer Library or Knowledge Library. Consider adding relevant "
    "information to improve future responses.]"
)

TEMPLATE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("security", "compliance", "certification"), SECURITY_TEMPLATE),
    (("experience", "history", "years"), EXPERIENCE_TEMPLATE),
    (("team", "staff", "personnel"), TEAM_TEMPLATE),
)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class CascadeStep:
    """Outcome of one cascade step: an answer, or a decline with a reason."""

    outcome: CascadeOutcome
    result: GenerationResult | None = None
    reason: str | None = None

    @property
    def answered(self) -> bool:
        return self.result is not None

    @classmethod
    def decline(cls, outcome: CascadeOutcome, reason: str) -> "CascadeStep":
        return cls(outcome=outcome, reason=reason)


@dataclass(frozen=True)
class RetrievedContext:
    answers: Sequence[RetrievalMatch[AnswerRecord]] = ()
    chunks: Sequence[RetrievalMatch[KnowledgeChunk]] = ()
    examples: Sequence[RetrievalMatch[TrainingExample]] = ()
    winning_patterns: str | None = None

    @property
    def has_context(self) -> bool:
        return bool(self.answers or self.chunks or self.winning_patterns)


def select_template(question: str) -> str:
    lowered = question.lower()
    for keywords, template in TEMPLATE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return template
    return GENERIC_TEMPLATE


class ResponseOrchestrator:
    """Runs the ordered answer cascade for one question.

    The steps are tried in order and the first one that answers wins:
    direct reuse, context reuse, generator synthesis, extractive synthesis and
    finally a category template. Only validation and guard failures raise; the
    batch path can additionally ask for generator rate limits to propagate.
    """

    def __init__(
        self,
        answers: AnswerLibraryIndex,
        knowledge: KnowledgeChunkStore,
        training: TrainingExampleStore,
        generator: TextGenerator | None = None,
        *,
        guard: InjectionGuard | None = None,
        trust: TrustScorer | None = None,
        prompt_builder: PromptBuilder | None = None,
        scorer: LexicalScorer | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._answers = answers
        self._knowledge = knowledge
        self._training = training
        self._generator = generator or OfflineGenerator()
        self._guard = guard or PatternInjectionGuard()
        self._config = config or PipelineConfig()
        self._trust = trust or TrustScorer(self._config)
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._scorer = scorer or LexicalScorer(keyword_min_length=self._config.keyword_min_length)
        self._logger = get_logger("orchestrator")

    @property
    def trust_scorer(self) -> TrustScorer:
        return self._trust

    def answer(
        self,
        tenant_id: str,
        question: str | None,
        *,
        project_context: str | None = None,
        tone: str = "professional",
        raise_rate_limit: bool = False,
    ) -> GenerationResult:
        text = (question or "").strip()
        if not text:
            raise ValidationError("Question text is required")
        self._screen(text, "question")
        if project_context:
            self._screen(project_context, "project_context")

        answer_matches = self._answers.search(tenant_id, text)
        step = self._direct_reuse(tenant_id, answer_matches)
        if not step.answered:
            context = self._collect_context(tenant_id, text, answer_matches)
            if context.has_context:
                step = self._context_reuse(tenant_id, context)
                if not step.answered:
                    step = self._synthesise(
                        text,
                        context,
                        project_context=project_context,
                        tone=tone,
                        raise_rate_limit=raise_rate_limit,
                    )
                if not step.answered:
                    step = self._extractive(text, context)
            if not step.answered:
                step = self._template(text)
        return self._finish(tenant_id, step)

    def _screen(self, text: str, field_name: str) -> None:
        verdict = self._guard.check(text)
        if not verdict.safe:
            raise GuardRejectionError(verdict.reason or "Input rejected", field=field_name)

    def _direct_reuse(self, tenant_id: str, matches: Sequence[RetrievalMatch[AnswerRecord]]) -> CascadeStep:
        if not matches or matches[0].similarity < self._config.direct_reuse_similarity:
            return CascadeStep.decline(CascadeOutcome.DIRECT_REUSE, "no match above direct reuse threshold")
        best = matches[0]
        if not best.record.answer.strip():
            return CascadeStep.decline(CascadeOutcome.DIRECT_REUSE, "best match has a blank answer")
        self._answers.record_usage(tenant_id, best.record.id)
        result = GenerationResult(
            response_text=best.record.answer,
            sources=(self._answer_source(best),),
            trust_score=self._trust.direct_reuse_score(best.similarity),
            outcome=CascadeOutcome.DIRECT_REUSE,
            used_answer_library=True,
        )
        return CascadeStep(outcome=CascadeOutcome.DIRECT_REUSE, result=result)

    def _collect_context(
        self,
        tenant_id: str,
        question: str,
        answer_matches: Sequence[RetrievalMatch[AnswerRecord]],
    ) -> RetrievedContext:
        context_answers = [
            match for match in answer_matches if match.similarity >= self._config.context_min_similarity
        ]
        chunks = self._knowledge.search(tenant_id, question)
        examples = self._training.relevant(tenant_id, question)
        return RetrievedContext(
            answers=context_answers,
            chunks=chunks,
            examples=examples,
            winning_patterns=TrainingExampleStore.build_context(examples),
        )

    def _context_reuse(self, tenant_id: str, context: RetrievedContext) -> CascadeStep:
        if not context.answers or context.answers[0].similarity < self._config.context_reuse_similarity:
            return CascadeStep.decline(CascadeOutcome.CONTEXT_REUSE, "no context answer above reuse threshold")
        best = context.answers[0]
        if not best.record.answer.strip():
            return CascadeStep.decline(CascadeOutcome.CONTEXT_REUSE, "best context answer is blank")
        self._answers.record_usage(tenant_id, best.record.id)
        result = GenerationResult(
            response_text=best.record.answer,
            sources=self._context_sources(context),
            trust_score=self._trust.score(context.answers, context.chunks),
            outcome=CascadeOutcome.CONTEXT_REUSE,
            used_answer_library=True,
            used_knowledge_library=bool(context.chunks),
        )
        return CascadeStep(outcome=CascadeOutcome.CONTEXT_REUSE, result=result)

    def _synthesise(
        self,
        question: str,
        context: RetrievedContext,
        *,
        project_context: str | None,
        tone: str,
        raise_rate_limit: bool,
    ) -> CascadeStep:
        prompt = self._prompt_builder.build_synthesis_prompt(
            question,
            knowledge=context.chunks,
            answers=context.answers,
            winning_patterns=context.winning_patterns,
            project_context=project_context,
            tone=tone,
        )
        try:
            with TimedSection(PipelineMetrics.observe_generation):
                generated = self._generator.generate(prompt)
        except Exception as exc:
            error = classify_error(exc)
            kind = "rate_limited" if isinstance(error, RateLimitedError) else "error"
            PipelineMetrics.observe_generation_failure(kind)
            self._logger.warning("generation.failed", kind=kind, detail=str(error))
            if raise_rate_limit and isinstance(error, RateLimitedError):
                raise error from exc
            return CascadeStep.decline(CascadeOutcome.CONTEXT_SYNTHESIS, str(error))
        text = (generated or "").strip()
        if not text:
            PipelineMetrics.observe_generation_failure("empty")
            self._logger.warning("generation.failed", kind="empty", detail="generator returned blank text")
            return CascadeStep.decline(CascadeOutcome.CONTEXT_SYNTHESIS, "generator returned blank text")
        result = GenerationResult(
            response_text=text,
            sources=self._context_sources(context),
            trust_score=self._trust.score(context.answers, context.chunks),
            outcome=CascadeOutcome.CONTEXT_SYNTHESIS,
            used_answer_library=bool(context.answers),
            used_knowledge_library=bool(context.chunks),
            used_generator=True,
        )
        return CascadeStep(outcome=CascadeOutcome.CONTEXT_SYNTHESIS, result=result)

    def _extractive(self, question: str, context: RetrievedContext) -> CascadeStep:
        keywords = self._scorer.keywords(question)
        if not context.chunks or not keywords:
            return CascadeStep.decline(CascadeOutcome.EXTRACTIVE_FALLBACK, "no chunks or keywords to extract from")
        scored: list[tuple[int, str]] = []
        for match in context.chunks:
            for raw in _SENTENCE_SPLIT.split(match.record.text):
                sentence = raw.strip()
                if len(sentence) < self._config.sentence_min_length:
                    continue
                lowered = sentence.lower()
                hits = sum(1 for keyword in keywords if keyword in lowered)
                if hits > 0:
                    scored.append((hits, sentence))
        if not scored:
            return CascadeStep.decline(CascadeOutcome.EXTRACTIVE_FALLBACK, "no sentence mentions a question keyword")
        scored.sort(key=lambda item: item[0], reverse=True)
        selected = [sentence for _, sentence in scored[: self._config.extractive_max_sentences]]
        paragraph = ". ".join(selected) + "."
        result = GenerationResult(
            response_text=paragraph,
            sources=(self._knowledge_source(context.chunks),),
            trust_score=self._trust.score((), context.chunks),
            outcome=CascadeOutcome.EXTRACTIVE_FALLBACK,
            used_knowledge_library=True,
        )
        return CascadeStep(outcome=CascadeOutcome.EXTRACTIVE_FALLBACK, result=result)

    def _template(self, question: str) -> CascadeStep:
        result = GenerationResult(
            response_text=select_template(question),
            sources=(SourceReference(kind=SourceKind.TEMPLATE, label="Template response", count=0),),
            trust_score=self._trust.template_score(),
            outcome=CascadeOutcome.TEMPLATE_FALLBACK,
        )
        return CascadeStep(outcome=CascadeOutcome.TEMPLATE_FALLBACK, result=result)

    def _finish(self, tenant_id: str, step: CascadeStep) -> GenerationResult:
        result = step.result
        if result is None:
            raise RuntimeError(f"cascade ended without an answer: {step.reason}")
        PipelineMetrics.observe_answer(result.outcome.value, result.trust_score)
        self._logger.info(
            "cascade.outcome",
            tenant_id=tenant_id,
            outcome=result.outcome.value,
            trust_score=result.trust_score,
            source_count=len(result.sources),
        )
        return result

    def _context_sources(self, context: RetrievedContext) -> tuple[SourceReference, ...]:
        sources = [self._answer_source(match) for match in context.answers]
        if context.chunks:
            sources.append(self._knowledge_source(context.chunks))
        if context.examples:
            sources.append(
                SourceReference(
                    kind=SourceKind.TRAINING_EXAMPLES,
                    label="Winning patterns",
                    count=len(context.examples),
                )
            )
        return tuple(sources)

    @staticmethod
    def _answer_source(match: RetrievalMatch[AnswerRecord]) -> SourceReference:
        return SourceReference(
            kind=SourceKind.ANSWER_LIBRARY,
            label=match.record.question,
            record_id=match.record.id,
            similarity=match.similarity,
        )

    @staticmethod
    def _knowledge_source(chunks: Sequence[RetrievalMatch[KnowledgeChunk]]) -> SourceReference:
        documents = tuple(dict.fromkeys(match.record.source_document for match in chunks))
        return SourceReference(
            kind=SourceKind.KNOWLEDGE_LIBRARY,
            label="Knowledge Library",
            count=len(chunks),
            documents=documents,
        )
