"""Command-line interface for mixscreen."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from mixscreen.config import load_pipeline_config
from mixscreen.screen import run_screen_from_config


def main(argv: Iterable[str] | None = None) -> int:
    """Run a gene-wise mixed-model screen from a JSON config.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(description="Gene-wise mixed-model screen")
    parser.add_argument(
        "--config", default="configs/screen.json", help="Path to JSON config"
    )
    parser.add_argument(
        "--n-jobs", type=int, default=None, help="Override worker pool size"
    )
    parser.add_argument("--output", default=None, help="Override output TSV path")
    args = parser.parse_args(list(argv) if argv is not None else None)

    cfg = load_pipeline_config(args.config)
    if args.n_jobs is not None:
        cfg = replace(cfg, screen=replace(cfg.screen, n_jobs=args.n_jobs))
    if args.output is not None:
        cfg = replace(cfg, output_path=Path(args.output))

    table = run_screen_from_config(cfg)
    print(f"genes={len(table)}")
    print(f"tested={table.n_tested}")
    print(f"failed={len(table.failures)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
