from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rfprag.errors import RecordNotFoundError, ValidationError
from rfprag.models import AnswerRecord, Project, ProjectQuestion, ProjectSection
from rfprag.retrieval.answers import AnswerLibraryIndex, _months_before
from rfprag.storage.repositories import InMemoryAnswerRepository


class FailingRepository(InMemoryAnswerRepository):
    def list(self, tenant_id: str):
        raise RuntimeError("database offline")


def _mk(repository: InMemoryAnswerRepository | None = None) -> AnswerLibraryIndex:
    return AnswerLibraryIndex(repository or InMemoryAnswerRepository())


def test_search_ranks_by_query_coverage():
    index = _mk()
    record = index.create(
        "tenant-a",
        question="What security certifications do you hold?",
        answer="We hold SOC 2 Type II and ISO 27001.",
    )
    index.create("tenant-a", question="Describe your pricing model", answer="Per seat.")
    matches = index.search("tenant-a", "Which security certifications does your company hold?")
    assert [match.record.id for match in matches] == [record.id]
    assert matches[0].similarity == 75.0


def test_search_excludes_matches_at_threshold():
    index = _mk()
    index.create("tenant-a", question="alpha only", answer="x")
    assert index.search("tenant-a", "alpha bravo charlie delta echoes") == []


def test_search_is_tenant_scoped():
    index = _mk()
    index.create("tenant-a", question="What security certifications do you hold?", answer="SOC 2")
    assert index.search("tenant-b", "What security certifications do you hold?") == []


def test_search_treats_repository_failure_as_no_matches():
    index = _mk(FailingRepository())
    assert index.search("tenant-a", "security certifications") == []


def test_identical_answers_are_reported_as_duplicates():
    index = _mk()
    first = index.create("t", question="Do you encrypt data?", answer="All data is encrypted with AES-256 at rest.")
    second = index.create("t", question="Is data encrypted?", answer="All data is encrypted with AES-256 at rest.")
    index.create("t", question="Pricing?", answer="Annual subscription billed per seat.")
    pairs = index.find_duplicates("t", 80)
    assert len(pairs) == 1
    assert {pairs[0].first.id, pairs[0].second.id} == {first.id, second.id}
    assert pairs[0].similarity == 100


def test_find_outdated_uses_last_used_or_created():
    repository = InMemoryAnswerRepository()
    old = AnswerRecord(id="old", question="q1", answer="a1", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    fresh = AnswerRecord(id="fresh", question="q2", answer="a2", created_at=datetime(2024, 6, 1, tzinfo=timezone.utc))
    revived = AnswerRecord(
        id="revived",
        question="q3",
        answer="a3",
        created_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
        last_used_at=datetime(2024, 7, 1, tzinfo=timezone.utc),
    )
    for record in (old, fresh, revived):
        repository.save("t", record)
    outdated = _mk(repository).find_outdated("t", now=datetime(2024, 8, 1, tzinfo=timezone.utc))
    assert [record.id for record in outdated] == ["old"]


def test_months_before_clamps_day():
    assert _months_before(datetime(2024, 8, 31, tzinfo=timezone.utc), 6) == datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert _months_before(datetime(2024, 3, 15, tzinfo=timezone.utc), 6) == datetime(2023, 9, 15, tzinfo=timezone.utc)


def test_record_usage_increments_count():
    index = _mk()
    record = index.create("t", question="q", answer="a")
    index.record_usage("t", record.id)
    updated = index.record_usage("t", record.id)
    assert updated is not None
    assert updated.usage_count == 2
    assert updated.last_used_at is not None


def test_get_and_delete_missing_record_raise():
    index = _mk()
    with pytest.raises(RecordNotFoundError):
        index.get("t", "missing")
    with pytest.raises(RecordNotFoundError):
        index.delete("t", "missing")


def test_update_filter_and_categories():
    index = _mk()
    record = index.create("t", question="Uptime SLA?", answer="99.9%", category="Implementation & Support")
    index.update("t", record.id, answer="99.95%", tags=["sla"])
    assert index.get("t", record.id).answer == "99.95%"
    assert [item.id for item in index.filter("t", "SLA")] == [record.id]
    assert index.categories("t") == ["Implementation & Support"]
    assert index.list("t", category="General") == []


def test_import_from_project_copies_approved_answers():
    index = _mk()
    project = Project(
        id="p1",
        name="Acme Bid",
        sections=(
            ProjectSection(
                name="Security",
                questions=(
                    ProjectQuestion(text="Do you encrypt?", response="Yes, AES-256.", status="approved"),
                    ProjectQuestion(text="Pen tests?", response="Annually.", status="draft"),
                    ProjectQuestion(text="Empty?", response="", status="approved"),
                ),
            ),
        ),
    )
    assert index.import_from_project("t", project) == 1
    (record,) = index.list("t")
    assert record.category == "Security"
    assert record.tags == frozenset({"imported", "acme-bid"})


def test_bulk_delete_counts_removed():
    index = _mk()
    first = index.create("t", question="q1", answer="a1")
    assert index.bulk_delete("t", [first.id, "missing"]) == 1


def test_blank_question_or_answer_is_rejected():
    index = _mk()
    with pytest.raises(ValidationError):
        index.create("t", question="Uptime SLA?", answer="   ")
    with pytest.raises(ValidationError):
        index.create("t", question=" \n", answer="99.9%")
    record = index.create("t", question="  Uptime SLA? ", answer=" 99.9% ")
    assert (record.question, record.answer) == ("Uptime SLA?", "99.9%")
    with pytest.raises(ValidationError):
        index.update("t", record.id, answer="")
    assert index.get("t", record.id).answer == "99.9%"
