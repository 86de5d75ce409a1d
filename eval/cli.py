from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from eval.dataset import DatasetError, load_dataset
from eval.history import HistoryError, append_history, filter_history, load_history
from eval.leaderboard import (
    LeaderboardError,
    build_leaderboard,
    build_manual_template,
    render_leaderboard_markdown,
    write_leaderboard,
)
from eval.reporting import (
    case_stats,
    count_case_errors,
    render_report,
    write_report_file,
    write_response_artifacts,
)
from eval.runner import build_report, select_models
from eval.types import Case, ModelResult, Report
from syn.chat_client import ChatClient
from syn.config import EnvSettings, EvalSettings
from syn.errors import ChatError, ConfigError
from syn.logging import configure_logging

logger = logging.getLogger(__name__)

_DEFAULTS = EvalSettings()


def add_eval_arguments(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
    p.add_argument(
        "--dataset",
        default=_DEFAULTS.dataset,
        help="Dataset directory containing source_*.txt and gold_*.json.",
    )
    p.add_argument("--out", default="", help="Write the report to this file (optional).")
    p.add_argument("--format", default=_DEFAULTS.format, choices=["md", "json"], help="Report format.")
    p.add_argument(
        "--models",
        default="",
        help="Comma-separated model IDs to evaluate (default: every listed model not on the denylist).",
    )
    p.add_argument("--limit", type=int, default=0, help="Max dataset cases to evaluate (0 = all).")
    p.add_argument(
        "--recall-threshold",
        type=float,
        default=_DEFAULTS.recall_threshold,
        help="Minimum recall required for a pass.",
    )
    p.add_argument("--history", default=_DEFAULTS.history, help="jsonl file that model run scores are appended to.")
    p.add_argument(
        "--leaderboard-out",
        default=_DEFAULTS.leaderboard_out,
        help="Leaderboard markdown path (empty disables the write).",
    )
    p.add_argument("--leaderboard-top", type=int, default=_DEFAULTS.leaderboard_top, help="Leaderboard rows to print.")
    p.add_argument(
        "--leaderboard-mode",
        default=_DEFAULTS.leaderboard_mode,
        choices=["generated", "manual"],
        help="generated: ranked from history; manual: review template to fill in by hand.",
    )
    p.add_argument("--no-history", action="store_true", help="Disable history append and leaderboard updates.")
    p.add_argument(
        "--responses-dir",
        default=_DEFAULTS.responses_dir,
        help="Base directory for per-run raw responses and scores (empty disables).",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=_DEFAULTS.timeout_seconds,
        help="Per-call deadline in seconds.",
    )
    return p


def add_leaderboard_arguments(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
    p.add_argument("--history", default=_DEFAULTS.history, help="jsonl run history file.")
    p.add_argument("--dataset", default=_DEFAULTS.dataset, help="Only include runs for this dataset path.")
    p.add_argument(
        "--recall-threshold",
        type=float,
        default=_DEFAULTS.recall_threshold,
        help="Only include runs scored with this recall threshold.",
    )
    p.add_argument("--top", type=int, default=_DEFAULTS.leaderboard_top, help="Rows to print (0 = all).")
    return p


def settings_from_args(args: argparse.Namespace) -> EvalSettings:
    try:
        return EvalSettings(
            dataset=args.dataset,
            out=args.out or "",
            format=args.format,
            models=args.models or "",
            limit=args.limit,
            recall_threshold=args.recall_threshold,
            history=args.history or "",
            leaderboard_out=args.leaderboard_out or "",
            leaderboard_top=args.leaderboard_top,
            leaderboard_mode=args.leaderboard_mode,
            no_history=bool(args.no_history),
            responses_dir=args.responses_dir or "",
            timeout_seconds=args.timeout,
        )
    except ValidationError as e:
        raise SystemExit(f"invalid eval options: {e}") from e


def load_cases(settings: EvalSettings) -> List[Case]:
    # Dataset problems invalidate every score, so they stop the run before any model call.
    try:
        cases = load_dataset(settings.dataset)
    except DatasetError as e:
        raise SystemExit(f"failed to load dataset: {e}") from e
    if 0 < settings.limit < len(cases):
        cases = cases[: settings.limit]
    return cases


def _print_model_line(result: ModelResult) -> None:
    parsed, errors = case_stats(result.cases)
    print(
        f"  {result.model_id} parsed={parsed} errors={errors} "
        f"elapsed={result.elapsed_ms / 1000:.2f}s tok/s={result.tokens_per_sec:.1f} ttft={result.avg_ttft_ms}ms"
    )


async def _run_models(env: EnvSettings, settings: EvalSettings, cases: List[Case], human: bool) -> Report:
    async with ChatClient(
        env.api_key,
        env.base_url,
        model=env.model,
        timeout_s=env.timeout_seconds,
        retry_cfg=env.retry_config(),
    ) as client:
        try:
            available = await asyncio.wait_for(client.list_models(), timeout=30.0)
        except (ChatError, asyncio.TimeoutError) as e:
            raise SystemExit(f"failed to list models: {e}") from e

        selected = select_models(available, settings.models)
        if not selected:
            raise SystemExit("no models selected")

        if human:
            print()
            print(f"Running eval ({len(selected)} models, {len(cases)} cases)")
            print("-" * 60)

        return await build_report(
            client,
            selected,
            cases,
            dataset_path=settings.dataset,
            recall_threshold=settings.recall_threshold,
            timeout_s=settings.timeout_seconds,
            top_p=settings.top_p,
            on_model=_print_model_line if human else None,
        )


def update_history_and_leaderboard(report: Report, settings: EvalSettings, responses_path: str, human: bool) -> None:
    """
    History/leaderboard failures are reported on their own; the report is already out by now.
    """
    if settings.no_history:
        return

    records = []
    if settings.history:
        try:
            append_history(settings.history, report)
            records = filter_history(load_history(settings.history), report.dataset_path, report.recall_threshold)
        except HistoryError as e:
            logger.warning("history update failed: %s", e)
            print(f"History not updated (run results above are complete): {e}", file=sys.stderr)

    rows = build_leaderboard(records)
    if human and rows and settings.leaderboard_top > 0:
        print(render_leaderboard_markdown(rows[: settings.leaderboard_top]))

    if not settings.leaderboard_out.strip():
        return
    if settings.leaderboard_mode == "manual":
        content = build_manual_template(report, responses_path)
    elif rows:
        content = render_leaderboard_markdown(rows)
    else:
        return
    try:
        written = write_leaderboard(settings.leaderboard_out, content)
    except LeaderboardError as e:
        print(f"Leaderboard not updated: {e}", file=sys.stderr)
        return
    if human:
        if written:
            print(f"Wrote leaderboard to {settings.leaderboard_out}")
        else:
            print(f"Left existing manual leaderboard unchanged at {settings.leaderboard_out}")


def finalize_report(report: Report, settings: EvalSettings) -> None:
    human = settings.format == "md"
    out = render_report(report, settings.format)

    if settings.out:
        write_report_file(settings.out, out)

    if human:
        print()
    print(out)
    if human and settings.out:
        print(f"Saved report to {settings.out}")

    responses_path = ""
    if settings.responses_dir.strip():
        responses_path = str(write_response_artifacts(report, settings.responses_dir))
        if human:
            print(f"Saved responses to {responses_path}")

    if human:
        print(f"Case errors: {count_case_errors(report)}")

    update_history_and_leaderboard(report, settings, responses_path, human)


def run_eval(args: argparse.Namespace, env: Optional[EnvSettings] = None) -> int:
    env = env or EnvSettings()
    configure_logging(env.log_level)
    settings = settings_from_args(args)
    cases = load_cases(settings)
    try:
        env.require_api_key()
    except ConfigError as e:
        raise SystemExit(str(e)) from e

    report = asyncio.run(_run_models(env, settings, cases, human=settings.format == "md"))
    finalize_report(report, settings)
    return 0


def run_leaderboard(args: argparse.Namespace) -> int:
    history = Path(args.history)
    try:
        records = load_history(history)
    except HistoryError as e:
        raise SystemExit(str(e)) from e
    rows = build_leaderboard(filter_history(records, args.dataset, args.recall_threshold))
    if not rows:
        print(f"No matching runs in {history} (dataset={args.dataset} recall_threshold={args.recall_threshold:.2f})")
        return 0
    top = int(args.top)
    print(render_leaderboard_markdown(rows[:top] if top > 0 else rows))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="eval",
        description="Evaluate model key-insight extraction against a gold dataset.",
    )
    return add_eval_arguments(p)


def main(argv: list[str] | None = None) -> int:
    return run_eval(build_parser().parse_args(argv))


if __name__ == "__main__":
    raise SystemExit(main())
