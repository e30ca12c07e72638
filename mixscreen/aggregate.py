"""Assemble per-gene fits into the final screen table."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from mixscreen.core.types import GeneFitFailure, GeneFitSuccess, GeneResult
from mixscreen.errors import ConfigurationError
from mixscreen.stats.multitest import adjust_pvalues
from mixscreen.utils import ensure_dir

RESULT_COLUMNS: tuple[str, ...] = ("Gene", "Beta", "P_Value", "VIP", "P_Adjust")


@dataclass(frozen=True, eq=False)
class ScreenResultTable:
    """Terminal artifact of a screen: one row per candidate gene."""

    _frame: pd.DataFrame = field(repr=False)
    correction: str
    failures: Mapping[str, str]

    @property
    def genes(self) -> list[str]:
        return self._frame["Gene"].tolist()

    @property
    def n_tested(self) -> int:
        return int(self._frame["P_Value"].notna().sum())

    def __len__(self) -> int:
        return int(self._frame.shape[0])

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def to_tsv(self) -> str:
        return self._frame.to_csv(sep="\t", index=False, na_rep="NA", float_format="%.10g")

    def write_tsv(self, path: str | Path) -> Path:
        out = Path(path)
        ensure_dir(out.parent.as_posix())
        out.write_text(self.to_tsv(), encoding="utf-8")
        return out


def _coerce_results(
    results: Mapping[str, GeneResult] | Sequence[GeneResult],
) -> dict[str, GeneResult]:
    if isinstance(results, Mapping):
        items = list(results.items())
    else:
        items = [(r.gene, r) for r in results]
    out: dict[str, GeneResult] = {}
    for key, result in items:
        if not isinstance(result, (GeneFitSuccess, GeneFitFailure)):
            raise TypeError(f"Unexpected result type for '{key}': {type(result).__name__}")
        if key != result.gene:
            raise ConfigurationError(f"Result keyed '{key}' belongs to gene '{result.gene}'.")
        if key in out:
            raise ConfigurationError(f"Duplicate result for gene '{key}'.")
        out[key] = result
    return out


def aggregate_results(
    genes: Sequence[str],
    results: Mapping[str, GeneResult] | Sequence[GeneResult],
    correction: str = "bonferroni",
) -> ScreenResultTable:
    """Build the ``Gene, Beta, P_Value, VIP, P_Adjust`` table in candidate order.

    The correction denominator counts only genes with a defined p-value;
    failed genes carry NaN in every numeric column.
    """
    genes = list(genes)
    by_gene = _coerce_results(results)
    if len(set(genes)) != len(genes):
        raise ConfigurationError("Candidate gene list contains duplicates.")
    missing = [g for g in genes if g not in by_gene]
    extra = sorted(set(by_gene) - set(genes))
    if missing or extra:
        raise ConfigurationError(
            f"Results do not match candidate genes: missing={missing[:10]} extra={extra[:10]}"
        )

    n = len(genes)
    beta = np.full(n, np.nan, dtype=float)
    pval = np.full(n, np.nan, dtype=float)
    vip = np.full(n, np.nan, dtype=float)
    failures: dict[str, str] = {}
    for i, gene in enumerate(genes):
        result = by_gene[gene]
        if isinstance(result, GeneFitSuccess):
            beta[i] = result.beta
            pval[i] = result.p_value
            vip[i] = result.vip
        else:
            failures[gene] = result.reason

    frame = pd.DataFrame(
        {
            "Gene": pd.Series(genes, dtype=object),
            "Beta": beta,
            "P_Value": pval,
            "VIP": vip,
            "P_Adjust": adjust_pvalues(pval, method=correction),
        },
        columns=list(RESULT_COLUMNS),
    )
    return ScreenResultTable(
        _frame=frame, correction=correction, failures=MappingProxyType(failures)
    )
