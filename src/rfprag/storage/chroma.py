"""Chroma-backed knowledge chunk repository."""

from __future__ import annotations

import hashlib
import math
import threading
from datetime import datetime
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

import chromadb
from chromadb.api import ClientAPI

from rfprag.errors import RetrievalUnavailable
from rfprag.models import KnowledgeChunk, utcnow


class ChromaChunkRepository:
    """Stores knowledge chunks in a Chroma collection partitioned by tenant metadata.

    Ranking is lexical and happens in the retrieval layer, so the vectors
    written here are deterministic hash placeholders that satisfy Chroma's
    schema; they are never queried.
    """

    def __init__(
        self,
        collection_name: str = "rfprag-knowledge",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
        vector_dim: int = 8,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection = self._client.get_or_create_collection(name=collection_name)
        self._dim = vector_dim
        self._lock = threading.Lock()

    def list(self, tenant_id: str) -> Sequence[KnowledgeChunk]:
        try:
            batch = self._collection.get(where={"tenant_id": tenant_id}, include=["documents", "metadatas"])
        except Exception as exc:
            raise RetrievalUnavailable(f"Chroma lookup failed: {exc}") from exc
        ids = batch.get("ids") or []
        documents = batch.get("documents") or []
        metadatas = batch.get("metadatas") or []
        chunks = [
            self._deserialize_chunk(chunk_id, document, metadata or {})
            for chunk_id, document, metadata in zip(ids, documents, metadatas, strict=False)
        ]
        chunks.sort(key=lambda chunk: (chunk.source_document, chunk.chunk_index))
        return chunks

    def replace_document(self, tenant_id: str, source_document: str, chunks: Sequence[KnowledgeChunk]) -> None:
        with self._lock:
            self._collection.delete(where=self._document_filter(tenant_id, source_document))
            if not chunks:
                return
            self._collection.upsert(
                ids=[chunk.id for chunk in chunks],
                documents=[chunk.text for chunk in chunks],
                embeddings=[list(self._hash_to_vector(chunk.text)) for chunk in chunks],
                metadatas=[self._serialize_chunk(chunk, tenant_id=tenant_id) for chunk in chunks],
            )

    def delete_document(self, tenant_id: str, source_document: str) -> int:
        where = self._document_filter(tenant_id, source_document)
        with self._lock:
            existing = self._collection.get(where=where, include=[])
            removed = len(existing.get("ids") or [])
            if removed:
                self._collection.delete(where=where)
        return removed

    def count(self, tenant_id: str) -> int:
        batch = self._collection.get(where={"tenant_id": tenant_id}, include=[])
        return len(batch.get("ids") or [])

    @staticmethod
    def _document_filter(tenant_id: str, source_document: str) -> dict:
        return {"$and": [{"tenant_id": tenant_id}, {"source_document": source_document}]}

    def _hash_to_vector(self, text: str) -> tuple[float, ...]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._dim]
        vector = [byte / 255.0 for byte in raw]
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return tuple(value / norm for value in vector)

    @staticmethod
    def _serialize_chunk(chunk: KnowledgeChunk, *, tenant_id: str) -> MutableMapping[str, object]:
        return {
            "tenant_id": tenant_id,
            "source_document": chunk.source_document,
            "chunk_index": chunk.chunk_index,
            "total_chunks": chunk.total_chunks,
            "created_at": chunk.created_at.isoformat(),
        }

    @staticmethod
    def _deserialize_chunk(chunk_id: str, document: str | None, metadata: Mapping[str, object]) -> KnowledgeChunk:
        created_raw = metadata.get("created_at")
        created_at = _parse_timestamp(created_raw) if isinstance(created_raw, str) else utcnow()
        return KnowledgeChunk(
            id=chunk_id,
            text=document or "",
            source_document=str(metadata.get("source_document", "")),
            chunk_index=int(metadata.get("chunk_index", 0)),
            total_chunks=int(metadata.get("total_chunks", 1)),
            created_at=created_at,
        )


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return utcnow()
