from __future__ import annotations

import argparse
from pathlib import Path

from eval.dataset import DatasetError, load_dataset


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dump_dataset",
        description="Debug tool: print dataset cases (id, title, gold insight count).",
    )
    p.add_argument("dataset", help="Dataset directory with source_*.txt / gold_*.json pairs.")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    path = Path(args.dataset).expanduser().resolve()
    try:
        cases = load_dataset(path)
    except DatasetError as e:
        raise SystemExit(str(e)) from e
    for c in cases:
        print(f"{c.id}\t{c.title}\t{len(c.gold_insights)}")
    print(f"cases={len(cases)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
