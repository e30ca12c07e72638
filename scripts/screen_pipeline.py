#!/usr/bin/env python3
"""Run the gene-wise mixed-model screen from a JSON config."""

from __future__ import annotations

from mixscreen.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
