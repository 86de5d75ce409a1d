from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, ValidationError

from eval.types import Case
from eval.utils import normalize_lines

logger = logging.getLogger(__name__)

SOURCE_PREFIX, SOURCE_SUFFIX = "source_", ".txt"
GOLD_PREFIX, GOLD_SUFFIX = "gold_", ".json"


class DatasetError(ValueError):
    pass


class GoldFile(BaseModel):
    id: str = ""
    title: str = ""
    key_insights: list[str | None] | None = None


def _suffix(name: str, prefix: str, ext: str) -> str | None:
    if name.startswith(prefix) and name.endswith(ext) and len(name) >= len(prefix) + len(ext):
        return name[len(prefix) : len(name) - len(ext)]
    return None


def _join_or_none(values: List[str]) -> str:
    return ", ".join(values) if values else "none"


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DatasetError(f"read {path.name}: {e}") from e


def load_dataset(path: str | Path) -> List[Case]:
    """
    Load `source_<id>.txt` / `gold_<id>.json` pairs from a directory.

    Every source must have a gold file and vice versa; the error lists every unmatched suffix
    on both sides. Cases without source text or without any non-empty gold insight are dropped.
    """
    d = Path(path)
    if not d.is_dir():
        raise DatasetError(f"Dataset directory not found: {d}")

    sources: Dict[str, str] = {}
    golds: Dict[str, GoldFile] = {}

    for entry in sorted(d.iterdir()):
        if not entry.is_file():
            continue
        suffix = _suffix(entry.name, SOURCE_PREFIX, SOURCE_SUFFIX)
        if suffix is not None:
            sources[suffix] = _read_text(entry).strip()
            continue
        suffix = _suffix(entry.name, GOLD_PREFIX, GOLD_SUFFIX)
        if suffix is not None:
            try:
                golds[suffix] = GoldFile.model_validate_json(_read_text(entry))
            except ValidationError as e:
                raise DatasetError(f"parse {entry.name}: {e}") from e

    missing_gold = sorted(set(sources) - set(golds))
    missing_source = sorted(set(golds) - set(sources))
    if missing_gold or missing_source:
        raise DatasetError(
            "dataset has unmatched files "
            f"(missing gold for: {_join_or_none(missing_gold)}; "
            f"missing source for: {_join_or_none(missing_source)})"
        )

    cases: List[Case] = []
    for suffix, source in sources.items():
        gold = golds[suffix]
        insights = normalize_lines(gold.key_insights)
        if not source or not insights:
            logger.debug("dataset=%s skipping case suffix=%s (empty source or gold)", d, suffix)
            continue
        cases.append(
            Case(
                id=gold.id or suffix,
                title=gold.title,
                source=source,
                gold_insights=insights,
            )
        )

    if not cases:
        raise DatasetError(f"no valid source_/gold_ pairs found in {d}")
    cases.sort(key=lambda c: c.id)
    return cases
