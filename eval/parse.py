from __future__ import annotations

from pydantic import BaseModel, ValidationError

from eval.types import ParsedOutput
from eval.utils import normalize_lines


class ParseError(ValueError):
    pass


class _Payload(BaseModel):
    tldr: str | None = None
    key_insights: list[str | None] | None = None
    evidence_quotes: list[str | None] | None = None


def _strip_fences(text: str) -> str:
    s = text.strip()
    for fence in ("```json", "```"):
        if s.startswith(fence):
            s = s[len(fence) :]
    if s.endswith("```"):
        s = s[: -len("```")]
    return s.strip()


def _json_span(text: str) -> str:
    start = text.find("{")
    if start >= 0:
        text = text[start:]
    end = text.rfind("}")
    if end >= 0:
        text = text[: end + 1]
    return text


def parse_output(raw: str) -> ParsedOutput:
    """
    Parse a model response into ParsedOutput.

    Tolerates ```json fences and prose before the first `{` / after the last `}`.
    Raises ParseError when what remains is not the expected JSON object.
    """
    clean = _json_span(_strip_fences(raw or ""))
    try:
        payload = _Payload.model_validate_json(clean)
    except ValidationError as e:
        raise ParseError(f"invalid JSON output: {e.errors(include_url=False)[0]['msg']}") from e

    return ParsedOutput(
        tldr=(payload.tldr or "").strip(),
        key_insights=normalize_lines(payload.key_insights),
        evidence_quotes=normalize_lines(payload.evidence_quotes),
    )
