from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from eval.reporting import (
    TABLE_HEADER,
    case_stats,
    count_case_errors,
    render_markdown,
    render_report,
    write_response_artifacts,
)
from eval.types import CaseResult, ModelResult, ModelSummary, ParsedOutput, Report, Score
from eval.utils import sanitize_file_part


def _report() -> Report:
    ok = CaseResult(
        case_id="01",
        raw_output='{"tldr": "x"}',
        parsed=ParsedOutput(tldr="x", key_insights=["a"], evidence_quotes=["q"]),
        score=Score(recall=1.0, format_compliant=True, passed=True, matched_gold_count=1),
        ttft_ms=120,
    )
    return Report(
        generated_at=datetime(2026, 2, 6, 10, 0, 5, tzinfo=timezone.utc),
        dataset_path="testdata/eval/walter_lewin",
        recall_threshold=0.9,
        models=[
            ModelResult(
                model_id="hf:org/m-high",
                cases=[ok, CaseResult(case_id="02", error="request timed out after 120s")],
                summary=ModelSummary(average_recall=0.5),
                elapsed_ms=2500,
                completion_tokens=300,
                tokens_per_sec=120.0,
                avg_ttft_ms=120,
            ),
            ModelResult(model_id="m-low", cases=[CaseResult(case_id="01", error="boom")]),
        ],
    )


def test_case_stats_counts_errors_only() -> None:
    cases = [CaseResult(case_id="1"), CaseResult(case_id="2", error="x"), CaseResult(case_id="3", error="   ")]
    assert case_stats(cases) == (2, 1)


def test_count_case_errors_across_models() -> None:
    assert count_case_errors(_report()) == 2


def test_render_markdown_table() -> None:
    md = render_markdown(_report())
    assert md.startswith("# syn eval report\n")
    assert "- Generated: 2026-02-06 10:00:05" in md
    assert "- Dataset: `testdata/eval/walter_lewin`" in md
    assert "- Recall threshold: 0.90" in md
    assert TABLE_HEADER in md
    assert "| `hf:org/m-high` | 1 | 1 | 2.50 | 300 | 120.0 | 120 |" in md
    assert "| `m-low` | 0 | 1 | 0.00 | 0 | 0.0 | 0 |" in md


def test_render_report_json() -> None:
    data = json.loads(render_report(_report(), "json"))
    assert data["generated_at"] == "2026-02-06T10:00:05+00:00"
    assert data["recall_threshold"] == 0.9
    first = data["models"][0]
    assert first["model_id"] == "hf:org/m-high"
    assert first["cases"][0]["parsed"]["key_insights"] == ["a"]
    assert first["cases"][1]["parsed"] is None
    assert first["cases"][1]["error"] == "request timed out after 120s"


def test_render_report_rejects_unknown_format() -> None:
    with pytest.raises(ValueError):
        render_report(_report(), "csv")


def test_write_response_artifacts_layout(tmp_path: Path) -> None:
    run_dir = write_response_artifacts(_report(), tmp_path / "responses")
    assert run_dir == tmp_path / "responses" / "20260206-100005"
    assert json.loads((run_dir / "report.json").read_text(encoding="utf-8"))["dataset_path"] == "testdata/eval/walter_lewin"

    case = json.loads((run_dir / "hf_org_m-high" / "case_01.json").read_text(encoding="utf-8"))
    assert case["case_id"] == "01"
    assert case["ttft_ms"] == 120
    assert case["score"]["passed"] is True
    assert (run_dir / "hf_org_m-high" / "case_02.json").exists()
    assert (run_dir / "m-low" / "case_01.json").exists()


@pytest.mark.parametrize(
    "value, expected",
    [
        ("hf:deepseek-ai/DeepSeek-V3.2", "hf_deepseek-ai_DeepSeek-V3.2"),
        ("a b*c", "a_b_c"),
        ("  ", "unknown"),
        ("///", "unknown"),
    ],
)
def test_sanitize_file_part(value: str, expected: str) -> None:
    assert sanitize_file_part(value) == expected
