"""Repository contracts and in-memory implementations.

Every repository is partitioned by tenant; no call reads or writes across
tenants. Writes take a lock so a single record update is atomic.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Generic, Protocol, Sequence, TypeVar

from rfprag.models import AnswerRecord, KnowledgeChunk, TrainingExample

RecordT = TypeVar("RecordT", AnswerRecord, KnowledgeChunk, TrainingExample)


class AnswerRepository(Protocol):
    """Persistence contract for answer library records."""

    def list(self, tenant_id: str) -> Sequence[AnswerRecord]:
        """Return all records for the tenant, newest first."""

    def get(self, tenant_id: str, record_id: str) -> AnswerRecord | None:
        """Return a single record or ``None``."""

    def save(self, tenant_id: str, record: AnswerRecord) -> AnswerRecord:
        """Insert or replace a record."""

    def delete(self, tenant_id: str, record_id: str) -> bool:
        """Remove a record, returning whether it existed."""

    def increment_usage(self, tenant_id: str, record_id: str, used_at: datetime) -> AnswerRecord | None:
        """Atomically bump ``usage_count`` and refresh ``last_used_at``."""


class ChunkRepository(Protocol):
    """Persistence contract for knowledge chunks."""

    def list(self, tenant_id: str) -> Sequence[KnowledgeChunk]:
        """Return all chunks for the tenant."""

    def replace_document(self, tenant_id: str, source_document: str, chunks: Sequence[KnowledgeChunk]) -> None:
        """Delete the document's existing chunks and store the new ones."""

    def delete_document(self, tenant_id: str, source_document: str) -> int:
        """Delete every chunk of a document, returning how many were removed."""

    def count(self, tenant_id: str) -> int:
        """Return the number of chunks held for the tenant."""


class TrainingRepository(Protocol):
    """Persistence contract for training examples."""

    def list(self, tenant_id: str) -> Sequence[TrainingExample]:
        """Return all examples for the tenant, newest first."""

    def add(self, tenant_id: str, example: TrainingExample) -> TrainingExample:
        """Store a new example."""

    def delete(self, tenant_id: str, record_id: str) -> bool:
        """Remove an example, returning whether it existed."""


class _TenantPartitionedStore(Generic[RecordT]):
    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, RecordT]] = {}
        self._lock = threading.Lock()

    def list(self, tenant_id: str) -> Sequence[RecordT]:
        with self._lock:
            records = list(self._records.get(tenant_id, {}).values())
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def get(self, tenant_id: str, record_id: str) -> RecordT | None:
        with self._lock:
            return self._records.get(tenant_id, {}).get(record_id)

    def delete(self, tenant_id: str, record_id: str) -> bool:
        with self._lock:
            bucket = self._records.get(tenant_id, {})
            return bucket.pop(record_id, None) is not None

    def count(self, tenant_id: str) -> int:
        with self._lock:
            return len(self._records.get(tenant_id, {}))

    def _put(self, tenant_id: str, record: RecordT) -> RecordT:
        with self._lock:
            self._records.setdefault(tenant_id, {})[record.id] = record
        return record


class InMemoryAnswerRepository(_TenantPartitionedStore[AnswerRecord]):
    """Dictionary-backed answer repository."""

    def save(self, tenant_id: str, record: AnswerRecord) -> AnswerRecord:
        return self._put(tenant_id, record)

    def increment_usage(self, tenant_id: str, record_id: str, used_at: datetime) -> AnswerRecord | None:
        with self._lock:
            bucket = self._records.get(tenant_id, {})
            current = bucket.get(record_id)
            if current is None:
                return None
            updated = replace(current, usage_count=current.usage_count + 1, last_used_at=used_at)
            bucket[record_id] = updated
            return updated


class InMemoryChunkRepository(_TenantPartitionedStore[KnowledgeChunk]):
    """Dictionary-backed chunk repository."""

    def list(self, tenant_id: str) -> Sequence[KnowledgeChunk]:
        with self._lock:
            chunks = list(self._records.get(tenant_id, {}).values())
        chunks.sort(key=lambda chunk: (chunk.source_document, chunk.chunk_index))
        return chunks

    def replace_document(self, tenant_id: str, source_document: str, chunks: Sequence[KnowledgeChunk]) -> None:
        with self._lock:
            bucket = self._records.setdefault(tenant_id, {})
            stale = [key for key, chunk in bucket.items() if chunk.source_document == source_document]
            for key in stale:
                del bucket[key]
            for chunk in chunks:
                bucket[chunk.id] = chunk

    def delete_document(self, tenant_id: str, source_document: str) -> int:
        with self._lock:
            bucket = self._records.get(tenant_id, {})
            stale = [key for key, chunk in bucket.items() if chunk.source_document == source_document]
            for key in stale:
                del bucket[key]
            return len(stale)


class InMemoryTrainingRepository(_TenantPartitionedStore[TrainingExample]):
    """Dictionary-backed training example repository."""

    def add(self, tenant_id: str, example: TrainingExample) -> TrainingExample:
        return self._put(tenant_id, example)
