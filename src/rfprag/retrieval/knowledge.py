"""Knowledge chunk store: keyword-overlap retrieval over ingested document excerpts."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence
from uuid import uuid4

from rfprag.config import PipelineConfig
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import KnowledgeChunk, RetrievalMatch
from rfprag.retrieval.similarity import LexicalScorer, rank_matches
from rfprag.storage.repositories import ChunkRepository


@dataclass(frozen=True)
class KnowledgeStats:
    total_chunks: int
    documents: tuple[str, ...]


class KnowledgeChunkStore:
    """Tenant-scoped chunk retrieval.

    Scores are plain query coverage; there is no corpus-wide weighting.
    """

    def __init__(
        self,
        repository: ChunkRepository,
        *,
        scorer: LexicalScorer | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._repository = repository
        self._scorer = scorer or LexicalScorer()
        self._config = config or PipelineConfig()
        self._logger = get_logger("knowledge")

    def search(self, tenant_id: str, query: str, limit: int | None = None) -> list[RetrievalMatch[KnowledgeChunk]]:
        start = time.perf_counter()
        chunks = self._load(tenant_id)
        if not self._scorer.query_tokens(query):
            return []
        scored = [
            RetrievalMatch(record=chunk, similarity=self._scorer.similarity(query, chunk.text))
            for chunk in chunks
        ]
        matches = rank_matches(
            scored,
            minimum=self._config.knowledge_min_similarity,
            limit=self._config.knowledge_search_limit if limit is None else limit,
        )
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval("knowledge_library", duration, len(matches))
        self._logger.info(
            "retrieval.complete",
            source="knowledge_library",
            tenant_id=tenant_id,
            candidates=len(chunks),
            match_count=len(matches),
            duration_seconds=duration,
        )
        return matches

    def replace_document(self, tenant_id: str, source_document: str, texts: Sequence[str]) -> list[KnowledgeChunk]:
        """Swap every chunk of ``source_document`` for the given texts."""

        cleaned = [" ".join(text.split()) for text in texts]
        cleaned = [text for text in cleaned if text]
        chunks = [
            KnowledgeChunk(
                id=f"chunk_{uuid4().hex}",
                text=text,
                source_document=source_document,
                chunk_index=index,
                total_chunks=len(cleaned),
            )
            for index, text in enumerate(cleaned)
        ]
        self._repository.replace_document(tenant_id, source_document, chunks)
        PipelineMetrics.tenant_chunk_count.labels(tenant_id=tenant_id).set(self._repository.count(tenant_id))
        self._logger.info(
            "knowledge.replaced",
            tenant_id=tenant_id,
            source_document=source_document,
            chunk_count=len(chunks),
        )
        return chunks

    def delete_document(self, tenant_id: str, source_document: str) -> int:
        return self._repository.delete_document(tenant_id, source_document)

    def stats(self, tenant_id: str) -> KnowledgeStats:
        chunks = self._repository.list(tenant_id)
        documents = sorted({chunk.source_document for chunk in chunks})
        return KnowledgeStats(total_chunks=len(chunks), documents=tuple(documents))

    @staticmethod
    def format_for_prompt(matches: Sequence[RetrievalMatch[KnowledgeChunk]]) -> str:
        return "\n\n".join(
            f"[Source {index}: {match.record.source_document}]\n{match.record.text}"
            for index, match in enumerate(matches, start=1)
        )

    def _load(self, tenant_id: str) -> Sequence[KnowledgeChunk]:
        try:
            return self._repository.list(tenant_id)
        except Exception as exc:
            PipelineMetrics.observe_retrieval_failure("knowledge_library")
            self._logger.warning("retrieval.unavailable", source="knowledge_library", tenant_id=tenant_id, detail=str(exc))
            return []
