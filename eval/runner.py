from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from eval.parse import ParseError, parse_output
from eval.prompt import build_prompt
from eval.scoring import score_case
from eval.summary import build_model_summary
from eval.types import Case, CaseResult, ModelResult, Report
from syn.chat_client import StreamResult
from syn.errors import ChatError

logger = logging.getLogger(__name__)

# Models that are known to be unusable for this task (timeouts, reasoning dumps instead of JSON).
MODEL_DENYLIST = frozenset(
    {
        "hf:deepseek-ai/DeepSeek-R1-0528",
        "hf:deepseek-ai/DeepSeek-V3",
        "hf:deepseek-ai/DeepSeek-V3-0324",
        "hf:MiniMaxAI/MiniMax-M2",
        "hf:Qwen/Qwen3-235B-A22B-Thinking-2507",
        "hf:zai-org/GLM-4.6",
        "hf:moonshotai/Kimi-K2-Instruct-0905",
        "hf:meta-llama/Llama-3.3-70B-Instruct",
    }
)


class ChatStreamer(Protocol):
    async def stream_chat(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
    ) -> StreamResult: ...


def select_models(available: Iterable[str], csv: str = "") -> List[str]:
    """Denylisted models are always dropped; a non-empty csv restricts to the listed ids."""
    allow = {m.strip() for m in (csv or "").split(",") if m.strip()}
    selected: List[str] = []
    for model_id in available:
        if model_id in MODEL_DENYLIST:
            continue
        if allow and model_id not in allow:
            continue
        selected.append(model_id)
    return selected


async def evaluate_model(
    chat: ChatStreamer,
    model_id: str,
    cases: Sequence[Case],
    *,
    recall_threshold: float,
    timeout_s: float = 120.0,
    top_p: float | None = 1.0,
) -> ModelResult:
    """
    Run every case through one model, sequentially.

    A failing case (transport error, deadline, unparsable output) is recorded with its error and a
    zero score; it never aborts the remaining cases.
    """
    started = time.perf_counter()
    results: List[CaseResult] = []
    completion_tokens = 0
    ttft_total = 0
    ttft_count = 0

    for case in cases:
        prompt = build_prompt(case.source)
        try:
            sr = await asyncio.wait_for(
                chat.stream_chat(prompt, model=model_id, top_p=top_p),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            err = f"request timed out after {timeout_s:g}s"
            logger.warning("model=%s case=%s error=%s", model_id, case.id, err)
            results.append(CaseResult(case_id=case.id, error=err))
            continue
        except ChatError as e:
            logger.warning("model=%s case=%s error=%s", model_id, case.id, e)
            results.append(CaseResult(case_id=case.id, error=str(e) or type(e).__name__))
            continue

        completion_tokens += sr.usage.completion_tokens
        if sr.ttft_ms > 0:
            ttft_total += sr.ttft_ms
            ttft_count += 1

        try:
            parsed = parse_output(sr.content)
        except ParseError as e:
            logger.warning("model=%s case=%s parse_error=%s", model_id, case.id, e)
            results.append(CaseResult(case_id=case.id, raw_output=sr.content, ttft_ms=sr.ttft_ms, error=str(e)))
            continue

        results.append(
            CaseResult(
                case_id=case.id,
                raw_output=sr.content,
                parsed=parsed,
                score=score_case(case, parsed, recall_threshold),
                ttft_ms=sr.ttft_ms,
            )
        )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return ModelResult(
        model_id=model_id,
        cases=results,
        summary=build_model_summary(results, recall_threshold),
        elapsed_ms=elapsed_ms,
        completion_tokens=completion_tokens,
        tokens_per_sec=(completion_tokens / (elapsed_ms / 1000)) if elapsed_ms > 0 else 0.0,
        avg_ttft_ms=(ttft_total // ttft_count) if ttft_count else 0,
    )


async def build_report(
    chat: ChatStreamer,
    model_ids: Sequence[str],
    cases: Sequence[Case],
    *,
    dataset_path: str,
    recall_threshold: float,
    timeout_s: float = 120.0,
    top_p: float | None = 1.0,
    on_model: Optional[Callable[[ModelResult], None]] = None,
    now: Optional[datetime] = None,
) -> Report:
    generated_at = now or datetime.now(timezone.utc)
    models: List[ModelResult] = []
    for model_id in model_ids:
        logger.info("evaluating model=%s cases=%s", model_id, len(cases))
        result = await evaluate_model(
            chat,
            model_id,
            cases,
            recall_threshold=recall_threshold,
            timeout_s=timeout_s,
            top_p=top_p,
        )
        models.append(result)
        if on_model is not None:
            on_model(result)
    return Report(
        generated_at=generated_at,
        dataset_path=dataset_path,
        recall_threshold=recall_threshold,
        models=models,
    )
