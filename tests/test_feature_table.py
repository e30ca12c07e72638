from __future__ import annotations

import anndata as ad
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from mixscreen.core.table import FeatureTable, detection_rates, select_candidate_genes
from mixscreen.errors import ConfigurationError


def _make_frame(n: int = 12) -> pd.DataFrame:
    rng = np.random.default_rng(0)
    return pd.DataFrame(
        {
            "GENE1": rng.normal(size=n),
            "HLA-DRB1": rng.normal(size=n),
            "ZERO": np.zeros(n),
            "hk1": rng.normal(size=n),
            "score": rng.normal(size=n),
            "sample": np.repeat(["s1", "s2", "s3"], n // 3),
        },
        index=[f"cell{i}" for i in range(n)],
    )


def test_from_frame_builds_readonly_arrays():
    df = _make_frame()
    table = FeatureTable.from_frame(df, ["GENE1", "HLA-DRB1"], ["hk1"], "score", "sample")
    assert table.n_cells == 12
    assert table.genes == ("GENE1", "HLA-DRB1")
    assert table.expression.shape == (12, 2)
    for arr in (table.expression, table.covariates, table.response, table.groups):
        assert not arr.flags.writeable
    with pytest.raises(ValueError):
        table.expression[0, 0] = 1.0
    np.testing.assert_allclose(table.gene_vector("HLA-DRB1"), df["HLA-DRB1"].to_numpy())


def test_model_frame_has_only_needed_columns():
    df = _make_frame()
    table = FeatureTable.from_frame(df, ["GENE1", "HLA-DRB1"], ["hk1"], "score", "sample")
    frame = table.model_frame("HLA-DRB1")
    assert list(frame.columns) == ["score", "HLA-DRB1", "hk1", "sample"]
    assert list(frame.index) == list(df.index)
    with pytest.raises(KeyError):
        table.model_frame("MISSING")


def test_from_frame_missing_columns():
    df = _make_frame()
    with pytest.raises(ConfigurationError, match="missing required columns"):
        FeatureTable.from_frame(df, ["GENE1", "NOPE"], ["hk1"], "score", "sample")
    with pytest.raises(ConfigurationError, match="missing required columns"):
        FeatureTable.from_frame(df, ["GENE1"], ["hk9"], "score", "sample")


def test_missing_response_or_group_rejected():
    df = _make_frame()
    df.loc["cell3", "score"] = np.nan
    with pytest.raises(ConfigurationError, match="missing values"):
        FeatureTable.from_frame(df, ["GENE1"], ["hk1"], "score", "sample")

    df = _make_frame()
    df["sample"] = df["sample"].astype(object)
    df.loc["cell0", "sample"] = None
    with pytest.raises(ConfigurationError, match="missing labels"):
        FeatureTable.from_frame(df, ["GENE1"], ["hk1"], "score", "sample")


def test_gene_list_validation():
    df = _make_frame()
    with pytest.raises(ConfigurationError, match="Duplicate"):
        FeatureTable.from_frame(df, ["GENE1", "GENE1"], ["hk1"], "score", "sample")
    with pytest.raises(ConfigurationError, match="overlap"):
        FeatureTable.from_frame(df, ["GENE1", "hk1"], ["hk1"], "score", "sample")
    with pytest.raises(ConfigurationError, match="empty"):
        FeatureTable.from_frame(df, [], ["hk1"], "score", "sample")


def test_single_group_rejected():
    df = _make_frame()
    df["sample"] = "s1"
    with pytest.raises(ConfigurationError, match="two levels"):
        FeatureTable.from_frame(df, ["GENE1"], ["hk1"], "score", "sample")


def test_from_anndata_sparse_layer():
    df = _make_frame()
    X = sp.csr_matrix(df[["GENE1", "HLA-DRB1", "ZERO"]].to_numpy())
    obs = df[["hk1", "score", "sample"]].copy()
    adata = ad.AnnData(X=X, obs=obs, var=pd.DataFrame(index=["GENE1", "HLA-DRB1", "ZERO"]))
    adata.layers["scaled"] = X * 2.0

    table = FeatureTable.from_anndata(adata, ["HLA-DRB1"], ["hk1"], "score", "sample")
    np.testing.assert_allclose(table.gene_vector("HLA-DRB1"), df["HLA-DRB1"].to_numpy())

    scaled = FeatureTable.from_anndata(
        adata, ["HLA-DRB1"], ["hk1"], "score", "sample", layer="scaled"
    )
    np.testing.assert_allclose(scaled.gene_vector("HLA-DRB1"), 2.0 * df["HLA-DRB1"].to_numpy())

    with pytest.raises(ConfigurationError, match="Layer"):
        FeatureTable.from_anndata(adata, ["GENE1"], ["hk1"], "score", "sample", layer="nope")
    with pytest.raises(ConfigurationError, match="var_names"):
        FeatureTable.from_anndata(adata, ["NOPE"], ["hk1"], "score", "sample")
    with pytest.raises(ConfigurationError, match="adata.obs"):
        FeatureTable.from_anndata(adata, ["GENE1"], ["hk9"], "score", "sample")


def test_detection_rates_dense_and_sparse():
    m = np.array([[0.0, 1.0, 0.0], [0.0, 2.0, 3.0], [0.0, 0.0, 1.0], [0.0, 1.0, 0.0]])
    np.testing.assert_allclose(detection_rates(m), [0.0, 0.75, 0.5])
    np.testing.assert_allclose(detection_rates(sp.csr_matrix(m)), [0.0, 0.75, 0.5])


def test_select_candidate_genes_preserves_order():
    df = pd.DataFrame(
        {
            "B": [1.0, 0.0, 0.0, 0.0],
            "A": [1.0, 1.0, 1.0, 0.0],
            "C": [0.0, 0.0, 0.0, 0.0],
        }
    )
    assert select_candidate_genes(df, ["C", "A", "B"], 0.0) == ["C", "A", "B"]
    assert select_candidate_genes(df, ["C", "A", "B"], 0.25) == ["A", "B"]
    assert select_candidate_genes(df, ["B", "A"], 0.5) == ["A"]
    with pytest.raises(ConfigurationError):
        select_candidate_genes(df, ["A"], 1.5)
    with pytest.raises(ConfigurationError, match="not found"):
        select_candidate_genes(df, ["A", "Z"], 0.1)


def test_select_candidate_genes_anndata():
    X = sp.csr_matrix(np.array([[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]]))
    adata = ad.AnnData(X=X, var=pd.DataFrame(index=["MYH6", "NPPA"]))
    assert select_candidate_genes(adata, ["NPPA", "MYH6"], 0.5) == ["MYH6"]
