from __future__ import annotations

from typing import Iterable, List, Sequence

from eval.types import Case, ParsedOutput, Score
from eval.utils import normalize_lines, normalize_text


# Empirically chosen; treat as tunable policy. Linking a contradiction needs less overlap than a match.
MATCH_OVERLAP_THRESHOLD = 0.55
CONTRADICTION_OVERLAP_THRESHOLD = 0.45
MIN_TOKEN_LEN = 3

NEGATION_MARKERS = ("not", "no", "never", "cannot", "can't", "without")
# Markers are compared against normalized text, so "can't" has to be normalized the same way.
_NORMALIZED_MARKERS = tuple(f" {normalize_text(m)} " for m in NEGATION_MARKERS)


def token_set(text: str) -> frozenset[str]:
    return frozenset(t for t in normalize_text(text).split() if len(t) >= MIN_TOKEN_LEN)


def token_overlap(a: str, b: str) -> float:
    """|A & B| / max(|A|, |B|) over normalized token sets; 0 when either side is empty."""
    a_set = token_set(a)
    b_set = token_set(b)
    if not a_set or not b_set:
        return 0.0
    return len(a_set & b_set) / max(len(a_set), len(b_set))


def contains_negation(text: str) -> bool:
    padded = f" {normalize_text(text)} "
    return any(m in padded for m in _NORMALIZED_MARKERS)


def has_insight_match(gold: str, predicted: Iterable[str]) -> bool:
    g = normalize_text(gold)
    for p in predicted:
        np = normalize_text(p)
        if not np:
            continue
        if g in np or np in g:
            return True
        if token_overlap(g, np) >= MATCH_OVERLAP_THRESHOLD:
            return True
    return False


def count_contradictions(gold: Sequence[str], predicted: Iterable[str]) -> int:
    """
    Count negated predictions whose closest gold insight is not negated.

    Negated predictions with no gold insight above the linkage threshold are treated as new caveats.
    """
    count = 0
    for p in predicted:
        np = normalize_text(p)
        if not np or not contains_negation(np):
            continue

        best = 0.0
        closest_negated = False
        for g in gold:
            ng = normalize_text(g)
            s = token_overlap(np, ng)
            if s > best:
                best = s
                closest_negated = contains_negation(ng)
        if best >= CONTRADICTION_OVERLAP_THRESHOLD and not closest_negated:
            count += 1
    return count


def quote_coverage(source: str, quotes: Sequence[str]) -> float:
    # Quotes must be verbatim (case-insensitive); no fuzzy matching here.
    if not quotes:
        return 0.0
    haystack = (source or "").lower()
    hits = sum(1 for q in quotes if (q or "").strip().lower() in haystack)
    return hits / len(quotes)


def is_format_compliant(out: ParsedOutput) -> bool:
    return bool(out.tldr.strip()) and bool(out.key_insights) and bool(out.evidence_quotes)


def score_case(case: Case, out: ParsedOutput, recall_threshold: float) -> Score:
    gold: List[str] = normalize_lines(case.gold_insights)
    matched = sum(1 for g in gold if has_insight_match(g, out.key_insights))
    recall = (matched / len(gold)) if gold else 0.0

    coverage = quote_coverage(case.source, out.evidence_quotes)
    contradictions = count_contradictions(gold, out.key_insights)
    format_ok = is_format_compliant(out)

    return Score(
        recall=recall,
        missing_insights=max(len(gold) - matched, 0),
        contradictions=contradictions,
        quote_coverage=coverage,
        format_compliant=format_ok,
        passed=recall >= recall_threshold and contradictions == 0 and format_ok,
        matched_gold_count=matched,
    )
