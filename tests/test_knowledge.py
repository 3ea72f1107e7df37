from __future__ import annotations

from uuid import uuid4

import chromadb

from rfprag.retrieval.knowledge import KnowledgeChunkStore
from rfprag.storage.chroma import ChromaChunkRepository
from rfprag.storage.repositories import InMemoryChunkRepository

SECURITY_TEXT = "Customer data is encrypted with AES-256 during nightly backups. Keys are rotated quarterly."


def _chroma_repository() -> ChromaChunkRepository:
    return ChromaChunkRepository(f"test-chunks-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())


def test_search_returns_positive_matches_only():
    store = KnowledgeChunkStore(InMemoryChunkRepository())
    store.replace_document("t", "security.pdf", [SECURITY_TEXT, "Our offices are located in Berlin."])
    matches = store.search("t", "How is customer data encrypted during backups?")
    assert len(matches) == 1
    assert matches[0].record.source_document == "security.pdf"
    assert matches[0].similarity == 100.0


def test_replace_document_swaps_existing_chunks():
    store = KnowledgeChunkStore(InMemoryChunkRepository())
    store.replace_document("t", "policy.docx", ["first version text", "second chunk"])
    chunks = store.replace_document("t", "policy.docx", ["  updated   version\ntext  ", ""])
    assert [chunk.text for chunk in chunks] == ["updated version text"]
    assert chunks[0].total_chunks == 1
    stats = store.stats("t")
    assert stats.total_chunks == 1
    assert stats.documents == ("policy.docx",)


def test_delete_document_and_tenant_isolation():
    store = KnowledgeChunkStore(InMemoryChunkRepository())
    store.replace_document("t1", "a.txt", [SECURITY_TEXT])
    store.replace_document("t2", "a.txt", [SECURITY_TEXT])
    assert store.delete_document("t1", "a.txt") == 1
    assert store.search("t1", "encrypted backups") == []
    assert store.search("t2", "encrypted backups")


def test_format_for_prompt_labels_sources():
    store = KnowledgeChunkStore(InMemoryChunkRepository())
    store.replace_document("t", "security.pdf", [SECURITY_TEXT])
    formatted = KnowledgeChunkStore.format_for_prompt(store.search("t", "encrypted backups"))
    assert formatted.startswith("[Source 1: security.pdf]\n")


def test_chroma_repository_round_trips_chunks():
    store = KnowledgeChunkStore(_chroma_repository())
    store.replace_document("t", "security.pdf", [SECURITY_TEXT, "Incident response within four hours."])
    store.replace_document("other", "security.pdf", ["Different tenant text about encryption."])
    matches = store.search("t", "incident response")
    assert [match.record.chunk_index for match in matches] == [1]
    assert store.stats("t").total_chunks == 2
    store.replace_document("t", "security.pdf", [SECURITY_TEXT])
    assert store.stats("t").total_chunks == 1
    assert store.stats("other").total_chunks == 1
    assert store.delete_document("t", "security.pdf") == 1
    assert store.stats("t").total_chunks == 0
