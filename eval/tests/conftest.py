from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

import pytest


def write_pair(d: Path, suffix: str, source: str, insights: Iterable[str], *, case_id: str | None = None, title: str = "t") -> None:
    (d / f"source_{suffix}.txt").write_text(source, encoding="utf-8")
    payload = {"id": case_id if case_id is not None else suffix, "title": title, "key_insights": list(insights)}
    (d / f"gold_{suffix}.json").write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture
def pair_writer():
    return write_pair


@pytest.fixture
def dataset_dir(tmp_path: Path) -> Path:
    d = tmp_path / "dataset"
    d.mkdir()
    write_pair(
        d,
        "01",
        "Physics requires assumptions, units, and experiments.",
        ["Assumptions must be explicit.", "Check units."],
        title="Method",
    )
    write_pair(
        d,
        "02",
        "Energy is conserved in a closed system.",
        ["Energy is conserved in closed systems."],
        title="Energy",
    )
    return d
