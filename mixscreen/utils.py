"""Shared utilities for mixscreen workflows."""

from __future__ import annotations

import os
from pathlib import Path

from mixscreen.errors import ConfigurationError


def ensure_dir(path: str) -> None:
    """Create a directory (and parents) if it does not exist."""
    if path == "":
        return
    os.makedirs(path, exist_ok=True)


def read_gene_list(path: str | Path) -> list[str]:
    """Read one gene identifier per line, skipping blanks and ``#`` comments."""
    gene_path = Path(path)
    if not gene_path.exists():
        raise FileNotFoundError(f"Gene list not found: {gene_path}")
    genes: list[str] = []
    with open(gene_path, "r", encoding="utf-8") as fh:
        for line in fh:
            item = line.strip()
            if item == "" or item.startswith("#"):
                continue
            genes.append(item)
    if not genes:
        raise ConfigurationError(f"Gene list '{gene_path}' is empty.")
    return genes
