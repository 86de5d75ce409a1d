from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List

from eval.types import MIN_DATETIME, LeaderboardRow, Report, RunRecord

logger = logging.getLogger(__name__)

GENERATED_MARKER = "# syn eval leaderboard"
MANUAL_MARKER = "# syn eval manual leaderboard"
FIELDS_LEGEND = (
    "fields: rank, model, runs, average_recall, best_recall, average_coverage, "
    "total_contradictions, pass_rate, last_seen"
)


class LeaderboardError(OSError):
    pass


@dataclass
class _Agg:
    runs: int = 0
    recall: float = 0.0
    best_recall: float = 0.0
    coverage: float = 0.0
    contradictions: int = 0
    passes: int = 0
    last_seen: datetime = MIN_DATETIME


def _as_utc(ts: datetime) -> datetime:
    # Older history lines may carry naive timestamps.
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def build_leaderboard(records: Iterable[RunRecord]) -> List[LeaderboardRow]:
    """
    Aggregate run records per model.

    Ordering: average recall desc, best recall desc, run count desc; model id breaks full ties
    so the order is total.
    """
    by_model: Dict[str, _Agg] = {}
    for r in records:
        a = by_model.setdefault(r.model_id, _Agg())
        a.runs += 1
        a.recall += r.average_recall
        a.coverage += r.average_quote_coverage
        a.contradictions += r.total_contradictions
        a.best_recall = max(a.best_recall, r.average_recall)
        if r.overall_pass:
            a.passes += 1
        a.last_seen = max(a.last_seen, _as_utc(r.generated_at))

    rows = [
        LeaderboardRow(
            model_id=model_id,
            runs=a.runs,
            average_recall=a.recall / a.runs,
            best_recall=a.best_recall,
            average_coverage=a.coverage / a.runs,
            total_contradictions=a.contradictions,
            overall_pass_rate=a.passes / a.runs,
            last_seen=a.last_seen,
        )
        for model_id, a in by_model.items()
    ]
    rows.sort(key=lambda r: (-r.average_recall, -r.best_recall, -r.runs, r.model_id))
    return rows


def render_leaderboard_markdown(rows: List[LeaderboardRow]) -> str:
    # One block per model: tables truncate badly in narrow terminals.
    out = [f"{GENERATED_MARKER}\n\n", f"{FIELDS_LEGEND}\n\n"]
    for i, r in enumerate(rows, start=1):
        out.append(
            f"{i}) `{r.model_id}`\n"
            f"- runs: {r.runs}\n"
            f"- average_recall: {r.average_recall:.2f}\n"
            f"- best_recall: {r.best_recall:.2f}\n"
            f"- average_coverage: {r.average_coverage:.2f}\n"
            f"- total_contradictions: {r.total_contradictions}\n"
            f"- pass_rate: {r.overall_pass_rate:.2f}\n"
            f"- last_seen: {r.last_seen.isoformat(timespec='seconds')}\n\n"
        )
    return "".join(out)


def build_manual_template(report: Report, responses_path: str) -> str:
    lines = [
        f"{MANUAL_MARKER}\n",
        "\n",
        "Update ranks manually after reviewing model outputs.\n",
        "\n",
        f"- generated_at: {report.generated_at.isoformat(timespec='seconds')}\n",
        f"- dataset: `{report.dataset_path}`\n",
        f"- responses_path: `{responses_path}`\n",
        "\n",
        "| Rank | Model | Notes |\n",
        "|---:|---|---|\n",
    ]
    lines.extend(f"|  | `{m.model_id}` |  |\n" for m in report.models)
    return "".join(lines)


def should_keep_existing(path: str | Path) -> bool:
    """
    True when an existing leaderboard file must not be overwritten.

    Only files we generated (generated marker present, manual marker absent) are replaced.
    """
    p = Path(path)
    if not p.exists() or p.is_dir():
        return False
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return True
    return MANUAL_MARKER in text or GENERATED_MARKER not in text


def write_leaderboard(path: str | Path, content: str) -> bool:
    """Write `content` unless the file holds curated content. Returns whether it was written."""
    p = Path(path)
    if should_keep_existing(p):
        logger.info("leaderboard=%s kept (curated content)", p)
        return False
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    except OSError as e:
        raise LeaderboardError(f"write leaderboard {p}: {e}") from e
    return True
