"""Single-gene linear mixed-model fitting with failure isolation."""

from __future__ import annotations

import logging
import warnings
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from patsy import PatsyError
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from mixscreen.core.formula import ModelFormula, build_formula
from mixscreen.core.table import FeatureTable
from mixscreen.core.types import GeneFitFailure, GeneFitSuccess, GeneResult, ScreenConfig
from mixscreen.errors import ModelFitError

logger = logging.getLogger(__name__)

# Failures of the numerical layer that are scoped to one gene.
NUMERICAL_ERRORS: tuple[type[BaseException], ...] = (
    np.linalg.LinAlgError,
    ValueError,
    FloatingPointError,
    ZeroDivisionError,
    OverflowError,
    PatsyError,
)


def _lookup_term(series: pd.Series, term: str) -> float:
    if term in series.index:
        return float(series[term])
    compact = term.replace(" ", "")
    for label in series.index:
        if str(label).replace(" ", "") == compact:
            return float(series[label])
    raise KeyError(term)


def fit_mixed_model(
    data: pd.DataFrame,
    formula: ModelFormula,
    *,
    reml: bool = True,
    methods: Sequence[str] = ("lbfgs", "powell"),
) -> tuple[float, float, float]:
    """Fit one random-intercept model and return ``(beta, p_value, |z|)`` for the gene.

    Raises:
        ModelFitError: On a degenerate design, non-convergence, or a gene term
            missing from the fitted fixed effects.
    """
    gene_values = data[formula.gene].to_numpy(dtype=float)
    if gene_values.size == 0 or np.ptp(gene_values) == 0.0:
        raise ModelFitError(formula.gene, "zero variance in expression")

    model = smf.mixedlm(formula.fixed, data, groups=data[formula.group])
    exog = np.asarray(model.exog, dtype=float)
    rank = int(np.linalg.matrix_rank(exog))
    if rank < exog.shape[1]:
        raise ModelFitError(
            formula.gene,
            f"rank-deficient design ({rank} < {exog.shape[1]} fixed effects)",
        )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        warnings.simplefilter("always", RuntimeWarning)
        result = model.fit(reml=reml, method=list(methods))
    for w in caught:
        logger.debug("Gene %s: %s", formula.gene, w.message)

    if not bool(getattr(result, "converged", False)):
        raise ModelFitError(formula.gene, "optimizer did not converge")

    try:
        beta = _lookup_term(result.fe_params, formula.gene_term)
        z_value = _lookup_term(result.tvalues, formula.gene_term)
        p_value = _lookup_term(result.pvalues, formula.gene_term)
    except KeyError:
        raise ModelFitError(
            formula.gene, "gene term absent from fitted fixed effects"
        ) from None

    if not (np.isfinite(beta) and np.isfinite(z_value) and np.isfinite(p_value)):
        raise ModelFitError(formula.gene, "non-finite estimate or standard error")
    return beta, float(np.clip(p_value, 0.0, 1.0)), abs(z_value)


def fit_gene(gene: str, table: FeatureTable, config: ScreenConfig) -> GeneResult:
    """Fit ``gene`` against ``table``; numerical failures come back as ``GeneFitFailure``.

    The call is a pure function of its arguments. ``ConfigurationError`` from
    formula construction and any non-numerical exception propagate.
    """
    formula = build_formula(gene, config.covariates, config.response, config.group)
    data = table.model_frame(gene)
    try:
        beta, p_value, vip = fit_mixed_model(
            data, formula, reml=config.reml, methods=config.fit_methods
        )
    except ModelFitError as exc:
        logger.debug("Gene %s failed: %s", gene, exc.reason)
        return GeneFitFailure(gene=gene, reason=exc.reason)
    except NUMERICAL_ERRORS as exc:
        reason = f"{type(exc).__name__}: {exc}"
        logger.debug("Gene %s failed: %s", gene, reason)
        return GeneFitFailure(gene=gene, reason=reason)
    return GeneFitSuccess(gene=gene, beta=beta, p_value=p_value, vip=vip)
