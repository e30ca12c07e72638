"""Parallel fan-out of per-gene model fits with order-stable collection."""

from __future__ import annotations

import logging
from typing import Sequence

from joblib import Parallel, cpu_count, delayed

from mixscreen.core.fit import fit_gene
from mixscreen.core.table import FeatureTable
from mixscreen.core.types import GeneFitFailure, GeneResult, ScreenConfig
from mixscreen.errors import ConfigurationError, WorkerFatalError

_LOGGER = logging.getLogger(__name__)

PRE_DISPATCH_BATCHES = 2


def resolve_n_jobs(n_jobs: int | None, n_tasks: int) -> int:
    """Effective pool size: ``n_jobs`` (or all CPUs) clamped to ``[1, n_tasks]``."""
    jobs = cpu_count() if n_jobs is None else int(n_jobs)
    if jobs < 1:
        raise ConfigurationError(f"n_jobs must be >= 1 (got {n_jobs}).")
    return max(1, min(jobs, int(n_tasks)))


def _call_indexed(
    idx: int, gene: str, table: FeatureTable, config: ScreenConfig
) -> tuple[int, GeneResult]:
    # Runs inside the worker, so the failing gene travels with the error.
    try:
        return idx, fit_gene(gene, table, config)
    except WorkerFatalError:
        raise
    except Exception as exc:
        raise WorkerFatalError(
            f"Screen aborted: {type(exc).__name__}: {exc}", genes=[gene]
        ) from exc


def _check_coverage(genes: Sequence[str], results: dict[str, GeneResult]) -> None:
    missing = [g for g in genes if g not in results]
    extra = sorted(set(results) - set(genes))
    if missing or extra:
        raise WorkerFatalError(
            f"Result collection mismatch: {len(missing)} missing, {len(extra)} unexpected",
            genes=missing + extra,
        )


def screen_genes(
    table: FeatureTable,
    genes: Sequence[str],
    config: ScreenConfig,
    logger: logging.Logger | None = None,
) -> dict[str, GeneResult]:
    """Fit every gene in ``genes`` and return results keyed by gene.

    Per-gene numerical failures come back as ``GeneFitFailure`` entries.
    Anything else escaping a worker aborts the screen as ``WorkerFatalError``.
    The returned mapping iterates in input order.
    """
    log = logger or _LOGGER
    genes = list(genes)
    if not genes:
        return {}

    jobs = resolve_n_jobs(config.n_jobs, len(genes))
    backend = config.backend
    batch_size = 1 if config.gene_timeout is not None else int(config.batch_size)
    if jobs == 1 or backend == "sequential":
        jobs, backend = 1, "sequential"

    log.info(
        "Screening %d genes: n_jobs=%d backend=%s batch_size=%d timeout=%s",
        len(genes),
        jobs,
        backend,
        batch_size,
        config.gene_timeout,
    )

    # Tasks joblib may have handed out beyond those already collected.
    window = max(1, PRE_DISPATCH_BATCHES * jobs * batch_size)
    rows: list[tuple[int, GeneResult]] = []
    if backend == "sequential":
        for idx, gene in enumerate(genes):
            rows.append(_call_indexed(idx, gene, table, config))
    else:
        parallel = Parallel(
            n_jobs=jobs,
            backend=backend,
            batch_size=batch_size,
            timeout=config.gene_timeout,
            pre_dispatch=f"{PRE_DISPATCH_BATCHES}*n_jobs",
            mmap_mode="r",
            return_as="generator_unordered",
        )
        stream = parallel(
            delayed(_call_indexed)(idx, gene, table, config)
            for idx, gene in enumerate(genes)
        )
        try:
            for row in stream:
                rows.append(row)
        except WorkerFatalError:
            raise
        except Exception as exc:
            # Worker crash or timeout: no gene attached, so report every
            # uncollected gene that could have been dispatched.
            done = {idx for idx, _ in rows}
            limit = len(rows) + window
            raise WorkerFatalError(
                f"Screen aborted: {type(exc).__name__}: {exc}",
                genes=[g for i, g in enumerate(genes[:limit]) if i not in done],
            ) from exc

    rows.sort(key=lambda x: x[0])
    results: dict[str, GeneResult] = {}
    for idx, result in rows:
        gene = genes[idx]
        if result.gene != gene or gene in results:
            raise WorkerFatalError(
                f"Result for task {idx} does not match gene '{gene}'", genes=[gene]
            )
        results[gene] = result
    _check_coverage(genes, results)

    n_failed = 0
    for gene, result in results.items():
        if isinstance(result, GeneFitFailure):
            n_failed += 1
            log.warning("Model fit failed for gene %s: %s", gene, result.reason)
    log.info(
        "Screen fits complete: %d fitted, %d failed", len(results) - n_failed, n_failed
    )
    return results
