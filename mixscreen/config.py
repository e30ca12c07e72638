"""Configuration loading utilities for mixscreen pipelines."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mixscreen.core.types import ScreenConfig
from mixscreen.errors import ConfigurationError
from mixscreen.utils import read_gene_list

INPUT_SUFFIXES: tuple[str, ...] = (".h5ad", ".csv", ".tsv")


def _unique_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in pairs:
        if key in out:
            raise ConfigurationError(f"Duplicate key '{key}' in config.")
        out[key] = value
    return out


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Read a JSON config file whose root is an object.

    Duplicate keys are rejected rather than silently overwritten. Syntax
    errors report the line and column of the first problem.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ConfigurationError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    text = config_path.read_text(encoding="utf-8")
    try:
        data = json.loads(text, object_pairs_hook=_unique_keys)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"{config_path}: line {exc.lineno}, column {exc.colno}: {exc.msg}"
        ) from exc
    if isinstance(data, dict):
        return data
    raise ConfigurationError(
        f"{config_path}: expected JSON object at top level, got {type(data).__name__}."
    )


@dataclass(frozen=True)
class PipelineConfig:
    """File-level settings around one screen run."""

    input_path: Path
    output_path: Path
    genes: tuple[str, ...]
    screen: ScreenConfig = field(default_factory=ScreenConfig)
    min_detection_rate: float = 0.0
    layer: str | None = None
    log_path: Path | None = None


_PIPELINE_KEYS = {
    "input_path",
    "output_path",
    "genes",
    "genes_path",
    "min_detection_rate",
    "layer",
    "log_path",
    "screen",
}


def _resolve(base: Path, value: str) -> Path:
    p = Path(value)
    return p if p.is_absolute() else base / p


def parse_pipeline_config(data: dict[str, Any], base_dir: str | Path = ".") -> PipelineConfig:
    """Validate a pipeline mapping; relative paths resolve against ``base_dir``."""
    base = Path(base_dir)
    unknown = sorted(set(data) - _PIPELINE_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown pipeline config keys: {', '.join(unknown)}.")
    for key in ("input_path", "output_path"):
        if not isinstance(data.get(key), str) or data[key].strip() == "":
            raise ConfigurationError(f"Config missing '{key}'.")

    input_path = _resolve(base, data["input_path"])
    if input_path.suffix.lower() not in INPUT_SUFFIXES:
        raise ConfigurationError(
            f"Unsupported input '{input_path.name}'. Expected one of: {', '.join(INPUT_SUFFIXES)}."
        )

    if ("genes" in data) == ("genes_path" in data):
        raise ConfigurationError("Config must set exactly one of 'genes' or 'genes_path'.")
    if "genes" in data:
        genes = data["genes"]
        if isinstance(genes, str) or not isinstance(genes, list):
            raise ConfigurationError("'genes' must be a list of gene identifiers.")
    else:
        genes = read_gene_list(_resolve(base, str(data["genes_path"])))

    rate = float(data.get("min_detection_rate", 0.0))
    if not (0.0 <= rate <= 1.0):
        raise ConfigurationError("min_detection_rate must be within [0, 1].")

    log_path = data.get("log_path")
    return PipelineConfig(
        input_path=input_path,
        output_path=_resolve(base, data["output_path"]),
        genes=tuple(str(g) for g in genes),
        screen=ScreenConfig.from_dict(data.get("screen", {})),
        min_detection_rate=rate,
        layer=data.get("layer"),
        log_path=_resolve(base, log_path) if log_path else None,
    )


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    """Load a pipeline config; relative paths are taken from the config's directory."""
    config_path = Path(path)
    return parse_pipeline_config(load_json_config(config_path), base_dir=config_path.parent)
