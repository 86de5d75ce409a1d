from __future__ import annotations

from typing import Sequence

from eval.types import CaseResult, ModelSummary


def build_model_summary(cases: Sequence[CaseResult], recall_threshold: float) -> ModelSummary:
    """
    Fold one model's case scores into a run-level summary.

    Overall pass needs the average recall threshold, zero contradictions AND every case passing,
    so one badly wrong case cannot be averaged away.
    """
    if not cases:
        return ModelSummary()

    n = len(cases)
    avg_recall = sum(c.score.recall for c in cases) / n
    avg_coverage = sum(c.score.quote_coverage for c in cases) / n
    contradictions = sum(c.score.contradictions for c in cases)
    format_passes = sum(1 for c in cases if c.score.format_compliant)
    all_passed = all(c.score.passed for c in cases)

    return ModelSummary(
        average_recall=avg_recall,
        average_quote_coverage=avg_coverage,
        total_contradictions=contradictions,
        format_pass_rate=format_passes / n,
        overall_pass=avg_recall >= recall_threshold and contradictions == 0 and all_passed,
    )
