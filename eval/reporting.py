from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Tuple

from eval.types import CaseResult, Report
from eval.utils import sanitize_file_part

REPORT_FORMATS = ("md", "json")
TABLE_HEADER = "| Model | Parsed | Errors | Elapsed (s) | Tokens | Tok/s | TTFT (ms) |"


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_json(obj: Any) -> str:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = dataclasses.asdict(obj)
    return json.dumps(obj, indent=2, ensure_ascii=False, default=_jsonable)


def write_json(path: str | Path, payload: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(to_json(payload) + "\n", encoding="utf-8")


def case_stats(cases: Iterable[CaseResult]) -> Tuple[int, int]:
    """(parsed, errors) counted from CaseResult.error only, independent of the score."""
    parsed = errors = 0
    for c in cases:
        if c.failed:
            errors += 1
        else:
            parsed += 1
    return parsed, errors


def count_case_errors(report: Report) -> int:
    return sum(case_stats(m.cases)[1] for m in report.models)


def render_markdown(report: Report) -> str:
    lines = [
        "# syn eval report",
        "",
        f"- Generated: {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"- Dataset: `{report.dataset_path}`",
        f"- Recall threshold: {report.recall_threshold:.2f}",
        "",
        TABLE_HEADER,
        "|---|---:|---:|---:|---:|---:|---:|",
    ]
    for m in report.models:
        parsed, errors = case_stats(m.cases)
        lines.append(
            f"| `{m.model_id}` | {parsed} | {errors} | {m.elapsed_ms / 1000:.2f} | "
            f"{m.completion_tokens} | {m.tokens_per_sec:.1f} | {m.avg_ttft_ms} |"
        )
    return "\n".join(lines) + "\n\n"


def render_report(report: Report, fmt: str) -> str:
    if fmt == "json":
        return to_json(report)
    if fmt == "md":
        return render_markdown(report)
    raise ValueError(f"invalid report format {fmt!r} (expected md or json)")


def write_report_file(path: str | Path, text: str) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def write_response_artifacts(report: Report, base_dir: str | Path) -> Path:
    """
    Persist raw responses and scores:
      <base>/<YYYYmmdd-HHMMSS>/report.json
      <base>/<YYYYmmdd-HHMMSS>/<model>/case_<id>.json
    """
    run_dir = Path(base_dir) / report.generated_at.strftime("%Y%m%d-%H%M%S")
    write_json(run_dir / "report.json", report)
    for m in report.models:
        model_dir = run_dir / sanitize_file_part(m.model_id)
        for c in m.cases:
            write_json(model_dir / f"case_{sanitize_file_part(c.case_id)}.json", c)
    return run_dir
