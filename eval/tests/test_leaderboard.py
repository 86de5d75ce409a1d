from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path

from eval.leaderboard import (
    FIELDS_LEGEND,
    GENERATED_MARKER,
    MANUAL_MARKER,
    build_leaderboard,
    build_manual_template,
    render_leaderboard_markdown,
    should_keep_existing,
    write_leaderboard,
)
from eval.types import MIN_DATETIME, LeaderboardRow, ModelResult, Report, RunRecord

T0 = datetime(2026, 2, 6, 10, 0, tzinfo=timezone.utc)


def _rec(model_id: str, recall: float, *, day: int = 0, passed: bool = False, contradictions: int = 0) -> RunRecord:
    return RunRecord(
        generated_at=T0 + timedelta(days=day),
        dataset_path="d",
        recall_threshold=0.9,
        model_id=model_id,
        case_count=1,
        average_recall=recall,
        average_quote_coverage=0.5,
        total_contradictions=contradictions,
        format_pass_rate=1.0,
        overall_pass=passed,
    )


def test_build_leaderboard_aggregates_per_model() -> None:
    rows = build_leaderboard(
        [
            _rec("m1", 0.6, day=0, contradictions=1),
            _rec("m2", 0.8, day=0),
            _rec("m1", 0.9, day=1, passed=True, contradictions=2),
        ]
    )
    assert [r.model_id for r in rows] == ["m2", "m1"]
    m1 = rows[1]
    assert m1.runs == 2
    assert abs(m1.average_recall - 0.75) < 1e-9
    assert m1.best_recall == 0.9
    assert m1.total_contradictions == 3
    assert m1.overall_pass_rate == 0.5
    assert m1.last_seen == T0 + timedelta(days=1)


def test_build_leaderboard_tie_breaks() -> None:
    records = [
        # same average recall (0.5) for a, b and c
        _rec("a", 0.5),
        _rec("b", 0.25),
        _rec("b", 0.75),
        _rec("c", 0.25),
        _rec("c", 0.75),
        _rec("c", 0.5),
    ]
    rows = build_leaderboard(records)
    # b and c share best recall 0.75; c has more runs.
    assert [r.model_id for r in rows] == ["c", "b", "a"]


def test_build_leaderboard_ordering_is_total_and_input_order_independent() -> None:
    records = [_rec("x", 0.5), _rec("y", 0.5), _rec("z", 0.5), _rec("w", 0.9)]
    orders = {tuple(r.model_id for r in build_leaderboard(list(p))) for p in itertools.permutations(records)}
    assert len(orders) == 1


def test_build_leaderboard_is_sorted_lexicographically() -> None:
    recalls = [0.1, 0.9, 0.5, 0.5, 0.7, 0.9, 0.3, 0.5]
    records = [_rec(f"m{i % 4}", r, day=i) for i, r in enumerate(recalls)]
    rows = build_leaderboard(records)
    keys = [(r.average_recall, r.best_recall, r.runs) for r in rows]
    for prev, cur in zip(keys, keys[1:]):
        assert not cur > prev


def test_build_leaderboard_empty() -> None:
    assert build_leaderboard([]) == []


def test_render_leaderboard_markdown_blocks() -> None:
    rows = [
        LeaderboardRow(
            model_id="m1",
            runs=2,
            average_recall=0.75,
            best_recall=0.9,
            average_coverage=1.0,
            total_contradictions=1,
            overall_pass_rate=0.5,
            last_seen=datetime(2026, 2, 7, 10, 0, tzinfo=timezone.utc),
        )
    ]
    md = render_leaderboard_markdown(rows)
    assert md.startswith(GENERATED_MARKER)
    assert FIELDS_LEGEND in md
    assert "fields: rank, model" in md
    assert "1) `m1`" in md
    assert "- average_recall: 0.75" in md
    assert "- total_contradictions: 1" in md
    assert "- last_seen: 2026-02-07T10:00:00+00:00" in md


def test_manual_template_lists_models() -> None:
    report = Report(generated_at=T0, dataset_path="d", recall_threshold=0.9, models=[ModelResult(model_id="m1")])
    text = build_manual_template(report, "analysis-results/eval-responses/20260206-100000")
    assert text.startswith(MANUAL_MARKER)
    assert "|  | `m1` |  |" in text
    assert "responses_path: `analysis-results/eval-responses/20260206-100000`" in text


def test_write_leaderboard_creates_missing_file(tmp_path: Path) -> None:
    out = tmp_path / "sub" / "lb.md"
    assert not should_keep_existing(out)
    assert write_leaderboard(out, f"{GENERATED_MARKER}\n\nnew\n")
    assert "new" in out.read_text(encoding="utf-8")


def test_write_leaderboard_replaces_generated_file(tmp_path: Path) -> None:
    out = tmp_path / "lb.md"
    out.write_text(f"{GENERATED_MARKER}\n\nold\n", encoding="utf-8")
    assert write_leaderboard(out, f"{GENERATED_MARKER}\n\nnew\n")
    assert "new" in out.read_text(encoding="utf-8")


def test_write_leaderboard_keeps_manual_file(tmp_path: Path) -> None:
    out = tmp_path / "lb.md"
    curated = f"{MANUAL_MARKER}\n\n| 1 | `m1` | best summaries |\n"
    out.write_text(curated, encoding="utf-8")
    assert not write_leaderboard(out, f"{GENERATED_MARKER}\n\nnew\n")
    assert out.read_text(encoding="utf-8") == curated


def test_write_leaderboard_keeps_foreign_content(tmp_path: Path) -> None:
    out = tmp_path / "lb.md"
    out.write_text("my own ranking notes\n", encoding="utf-8")
    assert should_keep_existing(out)
    assert not write_leaderboard(out, "whatever")
    assert out.read_text(encoding="utf-8") == "my own ranking notes\n"


def test_last_seen_sentinel_and_naive_timestamps() -> None:
    row = LeaderboardRow(
        model_id="m", runs=0, average_recall=0.0, best_recall=0.0, average_coverage=0.0,
        total_contradictions=0, overall_pass_rate=0.0,
    )
    assert row.last_seen == MIN_DATETIME
    naive = _rec("m1", 0.5).model_copy(update={"generated_at": datetime(2026, 2, 6, 10, 0)})
    assert build_leaderboard([naive])[0].last_seen == T0
