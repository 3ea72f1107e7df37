from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rfprag.errors import ProjectNotWonError
from rfprag.models import Project, ProjectQuestion, ProjectSection, TrainingExample
from rfprag.retrieval.training import TrainingExampleStore
from rfprag.storage.repositories import InMemoryTrainingRepository

LONG_RESPONSE = "We encrypt every backup with AES-256 and store keys in a dedicated hardware security module."


def _project(outcome: str | None) -> Project:
    return Project(
        id="p1",
        name="City Tender",
        outcome=outcome,
        sections=(
            ProjectSection(
                name="Security",
                questions=(
                    ProjectQuestion(text="How do you handle data encryption for backups?", response=LONG_RESPONSE),
                    ProjectQuestion(text="Do you have an SLA?", response="Yes."),
                ),
            ),
        ),
    )


def test_relevant_uses_jaccard_above_ten():
    store = TrainingExampleStore(InMemoryTrainingRepository())
    store.store("t", question_text="How do you handle data encryption for backups?", winning_response=LONG_RESPONSE)
    store.store("t", question_text="Describe the onboarding timeline", winning_response="Two weeks.")
    matches = store.relevant("t", "How do you handle data encryption at rest?")
    assert len(matches) == 1
    assert matches[0].similarity == 60.0


def test_extract_rejects_projects_not_won():
    store = TrainingExampleStore(InMemoryTrainingRepository())
    with pytest.raises(ProjectNotWonError):
        store.extract_from_project("t", _project("lost"))


def test_extract_keeps_long_responses_only():
    store = TrainingExampleStore(InMemoryTrainingRepository())
    assert store.extract_from_project("t", _project("won")) == 1
    (example,) = store.list("t")
    assert example.source_project_name == "City Tender"
    assert example.category == "Security"


def test_build_context_renders_winning_patterns():
    store = TrainingExampleStore(InMemoryTrainingRepository())
    assert TrainingExampleStore.build_context([]) is None
    store.extract_from_project("t", _project("won"))
    context = TrainingExampleStore.build_context(store.relevant("t", "data encryption for backups"))
    assert context is not None
    assert "--- Example 1 (from City Tender) ---" in context
    assert f"Winning Response: {LONG_RESPONSE}" in context


def test_stats_counts_recent_and_top_categories():
    repository = InMemoryTrainingRepository()
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    for index, (category, age) in enumerate([("security", 1), ("security", 2), ("pricing", 45)]):
        repository.add(
            "t",
            TrainingExample(
                id=f"e{index}",
                question_text="q",
                winning_response="r",
                category=category,
                created_at=now - timedelta(days=age),
            ),
        )
    stats = TrainingExampleStore(repository).stats("t", now=now)
    assert stats.total_examples == 3
    assert stats.recent_count == 2
    assert stats.top_categories[0] == ("security", 2)
