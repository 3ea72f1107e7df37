"""CLI for evaluating the RFPRAG answer cascade against a fixture dataset."""

from __future__ import annotations

import argparse
import json
import statistics
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from rfprag.config import Settings, get_settings
from rfprag.retrieval import AnswerLibraryIndex, KnowledgeChunkStore, LexicalScorer, TrainingExampleStore
from rfprag.services.generation import OfflineGenerator
from rfprag.services.orchestrator import ResponseOrchestrator
from rfprag.services.trust import TrustScorer
from rfprag.storage import InMemoryAnswerRepository, InMemoryChunkRepository, InMemoryTrainingRepository

EVAL_TENANT = "evaluation"


@dataclass(frozen=True)
class AnswerFixture:
    id: str
    question: str
    answer: str
    category: str | None = None


@dataclass(frozen=True)
class DocumentFixture:
    name: str
    chunks: Sequence[str]


@dataclass(frozen=True)
class ExampleFixture:
    question: str
    response: str
    project_name: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class QuestionFixture:
    question: str
    expected_outcome: str | None = None
    expected_answer_id: str | None = None


@dataclass(frozen=True)
class EvaluationDataset:
    answers: Sequence[AnswerFixture] = ()
    documents: Sequence[DocumentFixture] = ()
    examples: Sequence[ExampleFixture] = ()
    questions: Sequence[QuestionFixture] = ()


@dataclass(frozen=True)
class EvaluationResult:
    total_questions: int
    hits: int
    hit_rate: float
    mean_trust: float
    outcomes: dict[str, int]
    details: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_questions": self.total_questions,
            "hits": self.hits,
            "hit_rate": self.hit_rate,
            "mean_trust": self.mean_trust,
            "outcomes": self.outcomes,
            "details": self.details,
        }


def load_dataset(path: Path) -> EvaluationDataset:
    data = json.loads(path.read_text(encoding="utf-8"))
    return EvaluationDataset(
        answers=[
            AnswerFixture(
                id=item["id"],
                question=item["question"],
                answer=item["answer"],
                category=item.get("category"),
            )
            for item in data.get("answers", [])
        ],
        documents=[
            DocumentFixture(name=item["name"], chunks=list(item.get("chunks", [])))
            for item in data.get("documents", [])
        ],
        examples=[
            ExampleFixture(
                question=item["question"],
                response=item["response"],
                project_name=item.get("project_name"),
                category=item.get("category"),
            )
            for item in data.get("training_examples", [])
        ],
        questions=[
            QuestionFixture(
                question=item["question"],
                expected_outcome=item.get("expected_outcome"),
                expected_answer_id=item.get("expected_answer_id"),
            )
            for item in data["questions"]
        ],
    )


def run_evaluation(
    dataset_path: Path,
    *,
    settings: Settings | None = None,
    json_out: Path | None = None,
    markdown_out: Path | None = None,
) -> EvaluationResult:
    """Load the fixture into in-memory stores and answer every question offline."""

    settings = settings or get_settings()
    dataset = load_dataset(dataset_path)
    config = settings.pipeline_config()
    scorer = LexicalScorer(settings.stop_words_set, keyword_min_length=config.keyword_min_length)
    answers = AnswerLibraryIndex(InMemoryAnswerRepository(), scorer=scorer, config=config)
    knowledge = KnowledgeChunkStore(InMemoryChunkRepository(), scorer=scorer, config=config)
    training = TrainingExampleStore(InMemoryTrainingRepository(), scorer=scorer, config=config)

    record_ids: dict[str, str] = {}
    for fixture in dataset.answers:
        record = answers.create(EVAL_TENANT, question=fixture.question, answer=fixture.answer, category=fixture.category)
        record_ids[record.id] = fixture.id
    for document in dataset.documents:
        knowledge.replace_document(EVAL_TENANT, document.name, document.chunks)
    for example in dataset.examples:
        training.store(
            EVAL_TENANT,
            question_text=example.question,
            winning_response=example.response,
            category=example.category,
            project_name=example.project_name,
        )

    orchestrator = ResponseOrchestrator(
        answers,
        knowledge,
        training,
        OfflineGenerator(),
        trust=TrustScorer(config),
        scorer=scorer,
        config=config,
    )

    hits = 0
    trust_scores: list[int] = []
    outcomes: Counter[str] = Counter()
    details: list[dict] = []
    for query in dataset.questions:
        result = orchestrator.answer(EVAL_TENANT, query.question)
        trust_scores.append(result.trust_score)
        outcomes[result.outcome.value] += 1
        matched_ids = [record_ids.get(source.record_id or "") for source in result.sources if source.record_id]
        hit = True
        if query.expected_outcome and result.outcome.value != query.expected_outcome:
            hit = False
        if query.expected_answer_id and query.expected_answer_id not in matched_ids:
            hit = False
        hits += int(hit)
        details.append(
            {
                "question": query.question,
                "outcome": result.outcome.value,
                "expected_outcome": query.expected_outcome,
                "matched_answers": [answer_id for answer_id in matched_ids if answer_id],
                "expected_answer_id": query.expected_answer_id,
                "trust_score": result.trust_score,
                "hit": hit,
            },
        )

    total = len(dataset.questions)
    result = EvaluationResult(
        total_questions=total,
        hits=hits,
        hit_rate=hits / total if total else 0.0,
        mean_trust=statistics.fmean(trust_scores) if trust_scores else 0.0,
        outcomes=dict(outcomes),
        details=details,
    )

    if json_out:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    if markdown_out:
        markdown_out.write_text(_format_markdown(result), encoding="utf-8")
    return result


def _format_markdown(result: EvaluationResult) -> str:
    lines = [
        "# RFPRAG Evaluation Report",
        "",
        f"- Total questions: {result.total_questions}",
        f"- Hits: {result.hits}",
        f"- Hit rate: {result.hit_rate:.2f}",
        f"- Mean trust: {result.mean_trust:.1f}",
        "",
        "| Outcome | Count |",
        "| --- | --- |",
    ]
    for outcome, count in sorted(result.outcomes.items()):
        lines.append(f"| {outcome} | {count} |")
    lines.extend(["", "| Question | Outcome | Trust | Hit |", "| --- | --- | --- | --- |"])
    for item in result.details:
        lines.append(f"| {item['question']} | {item['outcome']} | {item['trust_score']} | {'yes' if item['hit'] else 'no'} |")
    return "\n".join(lines)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate the RFPRAG answer cascade.")
    parser.add_argument("--dataset", type=Path, required=True, help="Path to evaluation dataset JSON file.")
    parser.add_argument("--json-out", type=Path, default=None, help="Optional path to write JSON report")
    parser.add_argument("--markdown-out", type=Path, default=None, help="Optional path to write Markdown report")
    parser.add_argument("--min-accuracy", type=float, default=None, help="Override hit rate threshold")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    min_accuracy = args.min_accuracy if args.min_accuracy is not None else settings.evaluation_min_accuracy

    result = run_evaluation(
        args.dataset,
        settings=settings,
        json_out=args.json_out,
        markdown_out=args.markdown_out,
    )
    print(json.dumps(result.to_dict(), indent=2))

    if result.hit_rate < min_accuracy:
        print(
            f"Evaluation failed threshold (hit rate {result.hit_rate:.2f} vs {min_accuracy})",
            file=sys.stderr,
        )
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
