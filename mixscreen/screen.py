"""Gene-wise mixed-model screening: validate, fan out, join, correct."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import pandas as pd

from mixscreen.aggregate import ScreenResultTable, aggregate_results
from mixscreen.config import PipelineConfig, load_pipeline_config
from mixscreen.core.formula import build_formula
from mixscreen.core.table import FeatureTable, select_candidate_genes
from mixscreen.core.types import ScreenConfig
from mixscreen.errors import ConfigurationError
from mixscreen.parallel import screen_genes
from mixscreen.pipeline_utils import setup_logger

_LOGGER = logging.getLogger(__name__)


def _get_scanpy():
    import scanpy as sc

    return sc


def validate_screen_inputs(
    table: FeatureTable, genes: Sequence[str], config: ScreenConfig
) -> list[str]:
    """Check the candidate list and column names against ``table``.

    Raises ``ConfigurationError`` before any model is fitted.
    """
    if isinstance(genes, str):
        raise ConfigurationError("genes must be a sequence of identifiers, not a string.")
    genes = list(genes)
    if not genes:
        raise ConfigurationError("Candidate gene list is empty.")
    if len(set(genes)) != len(genes):
        raise ConfigurationError("Candidate gene list contains duplicates.")

    if table.response_name != config.response:
        raise ConfigurationError(
            f"Table response '{table.response_name}' does not match config '{config.response}'."
        )
    if table.group_name != config.group:
        raise ConfigurationError(
            f"Table group '{table.group_name}' does not match config '{config.group}'."
        )
    missing_cov = [c for c in config.covariates if c not in table.covariate_names]
    if missing_cov:
        raise ConfigurationError(
            f"Covariates missing from feature table: {', '.join(missing_cov)}."
        )
    overlap = [g for g in genes if g in set(config.covariates)]
    if overlap:
        raise ConfigurationError(
            f"Candidate genes overlap covariate names: {', '.join(overlap)}."
        )
    missing = [g for g in genes if g not in set(table.genes)]
    if missing:
        raise ConfigurationError(
            f"Candidate genes missing from feature table: {', '.join(missing[:10])}"
            + ("..." if len(missing) > 10 else "")
        )
    for gene in genes:
        build_formula(gene, config.covariates, config.response, config.group)
    return genes


def run_screen(
    table: FeatureTable,
    genes: Sequence[str],
    config: ScreenConfig,
    logger: logging.Logger | None = None,
) -> ScreenResultTable:
    """Fit one mixed model per candidate gene and return the corrected table.

    A completed screen always has one row per candidate gene. Configuration
    problems raise ``ConfigurationError`` before fitting; infrastructure
    failures raise ``WorkerFatalError`` and no table is returned.
    """
    log = logger or _LOGGER
    genes = validate_screen_inputs(table, genes, config)
    if table.genes != tuple(genes) or table.covariate_names != config.covariates:
        table = _restrict(table, genes, config)

    results = screen_genes(table, genes, config, logger=log)
    screen_table = aggregate_results(genes, results, correction=config.correction)
    log.info(
        "Screen complete: %d genes, %d with defined p-values, correction=%s",
        len(screen_table),
        screen_table.n_tested,
        screen_table.correction,
    )
    return screen_table


def _restrict(table: FeatureTable, genes: list[str], config: ScreenConfig) -> FeatureTable:
    cov_idx = [table.covariate_names.index(c) for c in config.covariates]
    gene_idx = [table.gene_index(g) for g in genes]
    return FeatureTable(
        cell_ids=table.cell_ids,
        genes=tuple(genes),
        expression=table.expression[:, gene_idx],
        covariate_names=config.covariates,
        covariates=table.covariates[:, cov_idx],
        response_name=table.response_name,
        response=table.response,
        group_name=table.group_name,
        groups=table.groups,
    )


def _read_input(path: Path):
    if not path.exists():
        raise FileNotFoundError(f"Input file '{path}' not found.")
    suffix = path.suffix.lower()
    if suffix == ".h5ad":
        return _get_scanpy().read_h5ad(path)
    sep = "\t" if suffix == ".tsv" else ","
    return pd.read_csv(path, sep=sep, index_col=0)


def build_feature_table(data, genes: Sequence[str], cfg: PipelineConfig) -> FeatureTable:
    screen = cfg.screen
    if isinstance(data, pd.DataFrame):
        return FeatureTable.from_frame(
            data, genes, screen.covariates, screen.response, screen.group
        )
    return FeatureTable.from_anndata(
        data, genes, screen.covariates, screen.response, screen.group, layer=cfg.layer
    )


def run_screen_from_config(
    cfg: PipelineConfig, logger: logging.Logger | None = None
) -> ScreenResultTable:
    """Load input, filter candidates by detection rate, screen, write TSV."""
    log = logger or setup_logger(cfg.log_path, "mixscreen")
    log.info("Loading %s", cfg.input_path.as_posix())
    data = _read_input(cfg.input_path)

    genes = select_candidate_genes(
        data, cfg.genes, min_detection_rate=cfg.min_detection_rate, layer=cfg.layer
    )
    log.info(
        "Candidate genes: %d of %d pass min_detection_rate=%.3f",
        len(genes),
        len(cfg.genes),
        cfg.min_detection_rate,
    )
    if not genes:
        raise ConfigurationError("No candidate genes pass the detection-rate filter.")

    table = build_feature_table(data, genes, cfg)
    screen_table = run_screen(table, genes, cfg.screen, logger=log)
    out = screen_table.write_tsv(cfg.output_path)
    log.info("Wrote %s", out.as_posix())
    return screen_table


def run_screen_pipeline(config_path: str | Path) -> ScreenResultTable:
    """Run the screen described by a JSON config file."""
    return run_screen_from_config(load_pipeline_config(config_path))
