from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List

from pydantic import ValidationError

from eval.types import Report, RunRecord

logger = logging.getLogger(__name__)

THRESHOLD_EPSILON = 1e-9


class HistoryError(OSError):
    pass


def records_for_report(report: Report) -> List[RunRecord]:
    return [RunRecord.from_model_result(report, m) for m in report.models]


def append_history(path: str | Path, report: Report) -> List[RunRecord]:
    """
    Append one jsonl record per model (report order). Never rewrites existing lines.

    The whole batch goes out in a single append write so concurrent writers do not interleave
    partial records.
    """
    p = Path(path)
    records = records_for_report(report)
    if not records:
        return records
    payload = "".join(r.model_dump_json() + "\n" for r in records)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as f:
            f.write(payload)
    except OSError as e:
        raise HistoryError(f"append history file {p}: {e}") from e
    return records


def load_history(path: str | Path) -> List[RunRecord]:
    """
    Read all run records. A missing file is an empty history.

    Blank and unparsable lines (e.g. a partial trailing line from an interrupted run) are skipped.
    """
    p = Path(path)
    if not p.exists():
        return []

    rows: List[RunRecord] = []
    skipped = 0
    try:
        with p.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                s = line.strip()
                if not s:
                    continue
                try:
                    rows.append(RunRecord.model_validate_json(s))
                except ValidationError:
                    skipped += 1
    except OSError as e:
        raise HistoryError(f"read history file {p}: {e}") from e

    if skipped:
        logger.debug("history=%s skipped_corrupt_lines=%s", p, skipped)
    return rows


def _norm_dataset_path(value: str) -> str:
    return os.path.normpath((value or "").strip())


def filter_history(records: Iterable[RunRecord], dataset_path: str, recall_threshold: float) -> List[RunRecord]:
    """Keep records for the same dataset path and (within epsilon) the same recall threshold."""
    target = _norm_dataset_path(dataset_path)
    return [
        r
        for r in records
        if _norm_dataset_path(r.dataset_path) == target
        and abs(r.recall_threshold - recall_threshold) <= THRESHOLD_EPSILON
    ]
