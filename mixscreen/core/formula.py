"""Per-gene mixed-model formula construction."""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import Sequence

from mixscreen.errors import ConfigurationError

_SAFE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_name(kind: str, name: str) -> str:
    if not isinstance(name, str):
        raise ConfigurationError(f"{kind} must be a string, got {type(name).__name__}.")
    if name.strip() == "":
        raise ConfigurationError(f"{kind} is empty.")
    return name


def quote_identifier(name: str) -> str:
    """Return ``name`` as a single formula token.

    Plain identifiers pass through; anything else (``HLA-DRB1``, ``MT.CO1``,
    ``C4(A)``, or a Python keyword such as ``lambda``) is wrapped in patsy's
    ``Q()`` so the formula parser looks it up as a column instead of
    evaluating it.
    """
    name = _check_name("Identifier", name)
    if _SAFE_NAME.match(name) and not keyword.iskeyword(name):
        return name
    return f"Q({name!r})"


@dataclass(frozen=True)
class ModelFormula:
    """Fixed-effects formula plus the random-intercept grouping column.

    ``fixed`` is what statsmodels parses; ``gene_term`` is the label the gene
    coefficient carries in the fitted parameter table.
    """

    fixed: str
    gene_term: str
    gene: str
    response: str
    covariates: tuple[str, ...]
    group: str

    def __str__(self) -> str:
        return f"{self.fixed} + (1 | {quote_identifier(self.group)})"


def build_formula(
    gene: str,
    covariates: Sequence[str],
    response: str,
    group: str,
) -> ModelFormula:
    """Build ``response ~ gene + cov_1 + ... + cov_k + (1 | group)`` for one gene."""
    gene = _check_name("Gene identifier", gene)
    response = _check_name("Response name", response)
    group = _check_name("Group name", group)
    covs = tuple(_check_name("Covariate name", c) for c in covariates)

    gene_term = quote_identifier(gene)
    rhs = " + ".join([gene_term, *(quote_identifier(c) for c in covs)])
    fixed = f"{quote_identifier(response)} ~ {rhs}"
    return ModelFormula(
        fixed=fixed,
        gene_term=gene_term,
        gene=gene,
        response=response,
        covariates=covs,
        group=group,
    )
