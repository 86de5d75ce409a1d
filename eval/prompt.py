from __future__ import annotations


_PROMPT_TEMPLATE = """You are evaluating key-insight extraction quality.

Task:
1) Produce a short TL;DR.
2) Extract key insights from the source without losing critical meaning.
3) Provide direct evidence quotes copied verbatim from the source.

Rules:
- Return JSON only.
- Do not include markdown fences.
- Keep claims faithful to the source.
- Include the most important concepts and caveats.

Return schema:
{
  "tldr": "string",
  "key_insights": ["string"],
  "evidence_quotes": ["string"]
}

Source:
"""


def build_prompt(source: str) -> str:
    # Deterministic: identical source always yields an identical prompt.
    return _PROMPT_TEMPLATE + source
