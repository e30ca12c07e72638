"""Read-only per-cell feature table consumed by the screen."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp

from mixscreen.errors import ConfigurationError


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


def _as_gene_list(genes: Sequence[str]) -> tuple[str, ...]:
    if isinstance(genes, str):
        raise ConfigurationError("genes must be a sequence of identifiers, not a string.")
    out = tuple(genes)
    if len(out) == 0:
        raise ConfigurationError("Candidate gene list is empty.")
    for gene in out:
        if not isinstance(gene, str) or gene.strip() == "":
            raise ConfigurationError(f"Invalid gene identifier: {gene!r}.")
    index = pd.Index(out)
    if index.has_duplicates:
        dup = sorted(set(index[index.duplicated()]))
        raise ConfigurationError(f"Duplicate gene identifiers: {', '.join(dup)}.")
    return out


def _dense_columns(matrix: Any, idx: np.ndarray) -> np.ndarray:
    sub = matrix[:, idx]
    if sp.issparse(sub):
        return sub.toarray().astype(float)
    return np.asarray(sub, dtype=float)


@dataclass(frozen=True, eq=False)
class FeatureTable:
    """Expression, covariates, response and grouping for one set of cells.

    All arrays are read-only. Build with :meth:`from_frame` or
    :meth:`from_anndata`; the constructor itself does the validation.
    """

    cell_ids: tuple[str, ...]
    genes: tuple[str, ...]
    expression: np.ndarray
    covariate_names: tuple[str, ...]
    covariates: np.ndarray
    response_name: str
    response: np.ndarray
    group_name: str
    groups: np.ndarray

    def __post_init__(self) -> None:
        genes = _as_gene_list(self.genes)
        object.__setattr__(self, "genes", genes)
        object.__setattr__(self, "cell_ids", tuple(str(c) for c in self.cell_ids))
        object.__setattr__(
            self, "covariate_names", tuple(str(c) for c in self.covariate_names)
        )
        n = len(self.cell_ids)
        if n == 0:
            raise ConfigurationError("Feature table has no cells.")

        reserved = {self.response_name, self.group_name, *self.covariate_names}
        clash = [g for g in genes if g in reserved]
        if clash:
            raise ConfigurationError(
                f"Gene identifiers overlap covariate/response/group columns: {', '.join(clash)}."
            )

        expr = np.asarray(self.expression, dtype=float)
        if expr.ndim != 2 or expr.shape != (n, len(genes)):
            raise ConfigurationError(
                f"Expression matrix shape {expr.shape} does not match "
                f"({n} cells, {len(genes)} genes)."
            )
        bad = [genes[j] for j in np.flatnonzero(~np.all(np.isfinite(expr), axis=0))]
        if bad:
            raise ConfigurationError(f"Expression contains NaN/inf for genes: {', '.join(bad[:10])}.")

        cov = np.asarray(self.covariates, dtype=float).reshape(n, len(self.covariate_names))
        if not np.all(np.isfinite(cov)):
            raise ConfigurationError("Covariate columns contain NaN/inf values.")

        resp = np.asarray(self.response, dtype=float).ravel()
        if resp.size != n:
            raise ConfigurationError(f"Response length {resp.size} does not match {n} cells.")
        if not np.all(np.isfinite(resp)):
            raise ConfigurationError(f"Response '{self.response_name}' has missing values.")

        groups = pd.Series(np.asarray(self.groups, dtype=object).ravel())
        if groups.size != n:
            raise ConfigurationError(f"Group length {groups.size} does not match {n} cells.")
        if groups.isna().any():
            raise ConfigurationError(f"Group '{self.group_name}' has missing labels.")
        groups = groups.astype(str).to_numpy()
        if np.unique(groups).size < 2:
            raise ConfigurationError(
                f"Group '{self.group_name}' needs at least two levels for a random intercept."
            )

        object.__setattr__(self, "expression", _readonly(expr))
        object.__setattr__(self, "covariates", _readonly(cov))
        object.__setattr__(self, "response", _readonly(resp))
        object.__setattr__(self, "groups", _readonly(groups))

    @property
    def n_cells(self) -> int:
        return len(self.cell_ids)

    def gene_index(self, gene: str) -> int:
        try:
            return self.genes.index(gene)
        except ValueError:
            raise KeyError(f"Gene '{gene}' not found in feature table.") from None

    def gene_vector(self, gene: str) -> np.ndarray:
        return self.expression[:, self.gene_index(gene)]

    def model_frame(self, gene: str) -> pd.DataFrame:
        """Columns needed to fit ``gene``: response, gene, covariates, group."""
        data: dict[str, Any] = {
            self.response_name: self.response,
            gene: self.gene_vector(gene),
        }
        for j, name in enumerate(self.covariate_names):
            data[name] = self.covariates[:, j]
        data[self.group_name] = self.groups
        return pd.DataFrame(data, index=pd.Index(self.cell_ids, name="cell"))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        genes: Sequence[str],
        covariates: Sequence[str],
        response: str,
        group: str,
    ) -> "FeatureTable":
        """Build from a DataFrame with one row per cell (index = barcode)."""
        if not isinstance(df, pd.DataFrame):
            raise ConfigurationError("df must be a pandas DataFrame.")
        genes = _as_gene_list(genes)
        covariates = tuple(covariates)
        required = [response, group, *covariates, *genes]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ConfigurationError(
                f"Feature table missing required columns: {', '.join(missing[:10])}"
                + ("..." if len(missing) > 10 else "")
            )
        return cls(
            cell_ids=tuple(df.index.astype(str)),
            genes=genes,
            expression=_numeric(df, list(genes)),
            covariate_names=covariates,
            covariates=_numeric(df, list(covariates)).reshape(len(df), len(covariates)),
            response_name=response,
            response=pd.to_numeric(df[response], errors="coerce").to_numpy(dtype=float),
            group_name=group,
            groups=df[group].to_numpy(dtype=object),
        )

    @classmethod
    def from_anndata(
        cls,
        adata,
        genes: Sequence[str],
        covariates: Sequence[str],
        response: str,
        group: str,
        layer: str | None = None,
    ) -> "FeatureTable":
        """Build from AnnData: genes from ``X`` (or ``layer``), the rest from ``obs``."""
        genes = _as_gene_list(genes)
        covariates = tuple(covariates)
        obs = adata.obs
        missing_obs = [c for c in (response, group, *covariates) if c not in obs.columns]
        if missing_obs:
            raise ConfigurationError(
                f"adata.obs missing required columns: {', '.join(missing_obs)}."
            )
        var_names = pd.Index(adata.var_names.astype(str))
        missing_genes = [g for g in genes if g not in var_names]
        if missing_genes:
            raise ConfigurationError(
                f"Genes not found in adata.var_names: {', '.join(missing_genes[:10])}"
                + ("..." if len(missing_genes) > 10 else "")
            )
        if layer is None:
            matrix = adata.X
        elif layer in adata.layers:
            matrix = adata.layers[layer]
        else:
            raise ConfigurationError(f"Layer '{layer}' not found in adata.layers.")

        idx = np.asarray([var_names.get_loc(g) for g in genes], dtype=int)
        return cls(
            cell_ids=tuple(adata.obs_names.astype(str)),
            genes=genes,
            expression=_dense_columns(matrix, idx),
            covariate_names=covariates,
            covariates=_numeric(obs, list(covariates)).reshape(adata.n_obs, len(covariates)),
            response_name=response,
            response=pd.to_numeric(obs[response], errors="coerce").to_numpy(dtype=float),
            group_name=group,
            groups=obs[group].to_numpy(dtype=object),
        )


def _numeric(df: pd.DataFrame, columns: list[str]) -> np.ndarray:
    if not columns:
        return np.empty((len(df), 0), dtype=float)
    return df[columns].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)


def detection_rates(matrix: Any) -> np.ndarray:
    """Fraction of cells (rows) with a non-zero value, per column."""
    if sp.issparse(matrix):
        csc = sp.csc_matrix(matrix)
        csc.eliminate_zeros()
        nnz = np.diff(csc.indptr)
        n_rows = csc.shape[0]
    else:
        arr = np.asarray(matrix, dtype=float)
        if arr.ndim != 2:
            raise ValueError("matrix must be 2D (cells x genes).")
        nnz = np.count_nonzero(arr, axis=0)
        n_rows = arr.shape[0]
    if n_rows == 0:
        raise ValueError("matrix has no rows.")
    return np.asarray(nnz, dtype=float) / float(n_rows)


def select_candidate_genes(
    data,
    genes: Sequence[str],
    min_detection_rate: float = 0.0,
    layer: str | None = None,
) -> list[str]:
    """Keep genes detected in at least ``min_detection_rate`` of cells.

    ``data`` is an AnnData object or a cells x features DataFrame. Input order
    is preserved; genes absent from ``data`` raise ``ConfigurationError``.
    """
    rate_min = float(min_detection_rate)
    if not (0.0 <= rate_min <= 1.0):
        raise ConfigurationError("min_detection_rate must be within [0, 1].")
    genes = list(_as_gene_list(genes))

    if isinstance(data, pd.DataFrame):
        missing = [g for g in genes if g not in data.columns]
        if missing:
            raise ConfigurationError(f"Genes not found in table: {', '.join(missing[:10])}.")
        rates = detection_rates(_numeric(data, genes))
    else:
        var_names = pd.Index(data.var_names.astype(str))
        missing = [g for g in genes if g not in var_names]
        if missing:
            raise ConfigurationError(
                f"Genes not found in adata.var_names: {', '.join(missing[:10])}."
            )
        if layer is None:
            matrix = data.X
        elif layer in data.layers:
            matrix = data.layers[layer]
        else:
            raise ConfigurationError(f"Layer '{layer}' not found in adata.layers.")
        idx = np.asarray([var_names.get_loc(g) for g in genes], dtype=int)
        sub = matrix[:, idx]
        rates = detection_rates(sub if sp.issparse(sub) else np.asarray(sub, dtype=float))

    return [g for g, r in zip(genes, rates) if r >= rate_min]
