from __future__ import annotations

import json
from pathlib import Path

from rfprag.config import Settings
from rfprag.eval.cli import main, run_evaluation

CERT_QUESTION = "What security certifications does your organization hold?"


def _write_fixture(path: Path, *, wrong_expectation: bool = False) -> Path:
    data = {
        "answers": [
            {"id": "a1", "question": CERT_QUESTION, "answer": "We are SOC 2 Type II certified.", "category": "Security"},
        ],
        "documents": [
            {
                "name": "security.pdf",
                "chunks": ["Customer data is encrypted with AES-256 during nightly backups. Keys are rotated quarterly."],
            },
        ],
        "training_examples": [],
        "questions": [
            {"question": CERT_QUESTION, "expected_outcome": "direct_reuse", "expected_answer_id": "a1"},
            {"question": "How is customer data encrypted during backups?", "expected_outcome": "extractive_fallback"},
            {
                "question": "Describe your pricing model",
                "expected_outcome": "direct_reuse" if wrong_expectation else "template_fallback",
            },
        ],
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_run_evaluation_reports_outcomes(tmp_path: Path):
    dataset = _write_fixture(tmp_path / "dataset.json")
    json_out = tmp_path / "report.json"
    markdown_out = tmp_path / "report.md"
    result = run_evaluation(dataset, settings=Settings(), json_out=json_out, markdown_out=markdown_out)
    assert result.total_questions == 3
    assert result.hits == 3
    assert result.hit_rate == 1.0
    assert result.outcomes == {"direct_reuse": 1, "extractive_fallback": 1, "template_fallback": 1}
    assert result.details[0]["matched_answers"] == ["a1"]
    assert json.loads(json_out.read_text(encoding="utf-8"))["hits"] == 3
    assert "| template_fallback | 1 |" in markdown_out.read_text(encoding="utf-8")


def test_main_exits_non_zero_below_threshold(tmp_path: Path, capsys):
    dataset = _write_fixture(tmp_path / "dataset.json", wrong_expectation=True)
    assert main(["--dataset", str(dataset), "--min-accuracy", "0.9"]) == 1
    assert "failed threshold" in capsys.readouterr().err
    assert main(["--dataset", str(dataset), "--min-accuracy", "0.5"]) == 0
