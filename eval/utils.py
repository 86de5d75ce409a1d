from __future__ import annotations

import re
from typing import Iterable


_NON_WORD_RE = re.compile(r"[^a-z0-9\s]+")
_NON_FILE_RE = re.compile(r"[^a-zA-Z0-9._-]+")


def normalize_text(value: str) -> str:
    """
    Comparison form used by insight matching:
    - lowercase + trim
    - non-alphanumeric runs collapsed to a single space
    """
    s = (value or "").strip().lower()
    s = _NON_WORD_RE.sub(" ", s)
    return " ".join(s.split())


def normalize_lines(values: Iterable[str | None] | None) -> list[str]:
    out: list[str] = []
    for v in values or []:
        s = (v or "").strip()
        if s:
            out.append(s)
    return out


def sanitize_file_part(value: str) -> str:
    s = (value or "").strip()
    if not s:
        return "unknown"
    s = s.replace("/", "_").replace(":", "_")
    s = _NON_FILE_RE.sub("_", s).strip("_")
    return s or "unknown"
