from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

# Sentinel for "never seen"; aware so it compares with UTC timestamps.
MIN_DATETIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Case:
    id: str
    title: str
    source: str
    gold_insights: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedOutput:
    tldr: str = ""
    key_insights: list[str] = field(default_factory=list)
    evidence_quotes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Score:
    recall: float = 0.0
    missing_insights: int = 0
    contradictions: int = 0
    quote_coverage: float = 0.0
    format_compliant: bool = False
    passed: bool = False
    matched_gold_count: int = 0


@dataclass(frozen=True)
class CaseResult:
    """
    One model response for one case.

    When `error` is non-empty the score is the zero value and must not be read as a real score.
    """

    case_id: str
    raw_output: str = ""
    parsed: Optional[ParsedOutput] = None
    score: Score = field(default_factory=Score)
    ttft_ms: int = 0
    error: str = ""

    @property
    def failed(self) -> bool:
        return bool(self.error.strip())


@dataclass(frozen=True)
class ModelSummary:
    average_recall: float = 0.0
    average_quote_coverage: float = 0.0
    total_contradictions: int = 0
    format_pass_rate: float = 0.0
    overall_pass: bool = False


@dataclass(frozen=True)
class ModelResult:
    model_id: str
    cases: list[CaseResult] = field(default_factory=list)
    summary: ModelSummary = field(default_factory=ModelSummary)
    elapsed_ms: int = 0
    completion_tokens: int = 0
    tokens_per_sec: float = 0.0
    avg_ttft_ms: int = 0


@dataclass(frozen=True)
class Report:
    generated_at: datetime
    dataset_path: str
    recall_threshold: float
    models: list[ModelResult] = field(default_factory=list)


class RunRecord(BaseModel):
    """Flattened (run, model) row persisted to the jsonl history."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    generated_at: datetime
    dataset_path: str
    recall_threshold: float
    model_id: str
    case_count: int = 0
    average_recall: float = 0.0
    average_quote_coverage: float = 0.0
    total_contradictions: int = 0
    format_pass_rate: float = 0.0
    overall_pass: bool = False

    @classmethod
    def from_model_result(cls, report: Report, model: ModelResult) -> "RunRecord":
        return cls(
            generated_at=report.generated_at,
            dataset_path=report.dataset_path,
            recall_threshold=report.recall_threshold,
            model_id=model.model_id,
            case_count=len(model.cases),
            average_recall=model.summary.average_recall,
            average_quote_coverage=model.summary.average_quote_coverage,
            total_contradictions=model.summary.total_contradictions,
            format_pass_rate=model.summary.format_pass_rate,
            overall_pass=model.summary.overall_pass,
        )


@dataclass(frozen=True)
class LeaderboardRow:
    model_id: str
    runs: int
    average_recall: float
    best_recall: float
    average_coverage: float
    total_contradictions: int
    overall_pass_rate: float
    last_seen: datetime = MIN_DATETIME
