from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from eval.history import HistoryError, append_history, filter_history, load_history, records_for_report
from eval.types import CaseResult, ModelResult, ModelSummary, Report, RunRecord

DATASET = "testdata/eval/walter_lewin"


def _model(model_id: str, recall: float, passed: bool = False, cases: int = 1) -> ModelResult:
    return ModelResult(
        model_id=model_id,
        cases=[CaseResult(case_id=f"{i:02d}") for i in range(cases)],
        summary=ModelSummary(
            average_recall=recall,
            average_quote_coverage=1.0,
            total_contradictions=0,
            format_pass_rate=1.0,
            overall_pass=passed,
        ),
    )


def _report(day: int, *models: ModelResult, threshold: float = 0.9, dataset: str = DATASET) -> Report:
    return Report(
        generated_at=datetime(2026, 2, day, 10, 0, tzinfo=timezone.utc),
        dataset_path=dataset,
        recall_threshold=threshold,
        models=list(models),
    )


def test_append_then_load_round_trip(tmp_path: Path) -> None:
    history = tmp_path / "nested" / "eval-history.jsonl"
    r1 = _report(6, _model("m1", 0.6, cases=3), _model("m2", 0.8))
    r2 = _report(7, _model("m1", 0.9, passed=True))

    append_history(history, r1)
    assert len(load_history(history)) == 2
    append_history(history, r2)

    records = load_history(history)
    assert len(records) == 3
    assert records == records_for_report(r1) + records_for_report(r2)
    first = records[0]
    assert first.model_id == "m1"
    assert first.case_count == 3
    assert first.average_recall == pytest.approx(0.6)
    assert first.generated_at == r1.generated_at
    assert first.dataset_path == DATASET


def test_append_never_rewrites_existing_content(tmp_path: Path) -> None:
    history = tmp_path / "h.jsonl"
    history.write_text("# hand note\n", encoding="utf-8")
    append_history(history, _report(6, _model("m1", 0.5)))
    lines = history.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "# hand note"
    assert len(lines) == 2


def test_load_history_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_history(tmp_path / "absent.jsonl") == []


def test_load_history_skips_blank_and_corrupt_lines(tmp_path: Path) -> None:
    history = tmp_path / "h.jsonl"
    append_history(history, _report(6, _model("m1", 0.5)))
    with history.open("a", encoding="utf-8") as f:
        f.write("\n")
        f.write("not json at all\n")
        f.write('{"model_id": "missing-fields"}\n')
    append_history(history, _report(7, _model("m2", 0.7)))
    with history.open("a", encoding="utf-8") as f:
        f.write('{"generated_at": "2026-02-08T10:00:00Z", "dataset_pa')

    records = load_history(history)
    assert [r.model_id for r in records] == ["m1", "m2"]


def test_append_history_error_is_history_error(tmp_path: Path) -> None:
    target = tmp_path / "is-a-dir.jsonl"
    target.mkdir()
    with pytest.raises(HistoryError):
        append_history(target, _report(6, _model("m1", 0.5)))


def test_filter_history_by_dataset_and_threshold() -> None:
    ts = datetime(2026, 2, 6, tzinfo=timezone.utc)
    records = [
        RunRecord(generated_at=ts, model_id="m1", dataset_path=DATASET, recall_threshold=0.90),
        RunRecord(generated_at=ts, model_id="m2", dataset_path=DATASET, recall_threshold=0.85),
        RunRecord(generated_at=ts, model_id="m3", dataset_path="testdata/eval/other", recall_threshold=0.90),
        RunRecord(generated_at=ts, model_id="m4", dataset_path=f" {DATASET}/ ", recall_threshold=0.1 * 9),
        RunRecord(generated_at=ts, model_id="m5", dataset_path="testdata/eval/../eval/walter_lewin", recall_threshold=0.9),
    ]
    filtered = filter_history(records, DATASET, 0.90)
    assert [r.model_id for r in filtered] == ["m1", "m4", "m5"]
