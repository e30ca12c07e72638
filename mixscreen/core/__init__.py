"""Core per-gene model subpackage."""

from mixscreen.core.fit import fit_gene, fit_mixed_model
from mixscreen.core.formula import ModelFormula, build_formula, quote_identifier
from mixscreen.core.table import FeatureTable, detection_rates, select_candidate_genes
from mixscreen.core.types import GeneFitFailure, GeneFitSuccess, GeneResult, ScreenConfig

__all__ = [
    "FeatureTable",
    "ScreenConfig",
    "GeneFitSuccess",
    "GeneFitFailure",
    "GeneResult",
    "ModelFormula",
    "build_formula",
    "quote_identifier",
    "fit_gene",
    "fit_mixed_model",
    "detection_rates",
    "select_candidate_genes",
]
