"""mixscreen public API."""

from mixscreen._version import __version__
from mixscreen.aggregate import ScreenResultTable, aggregate_results
from mixscreen.core.fit import fit_gene
from mixscreen.core.formula import build_formula
from mixscreen.core.table import FeatureTable, select_candidate_genes
from mixscreen.core.types import GeneFitFailure, GeneFitSuccess, ScreenConfig
from mixscreen.errors import ConfigurationError, ModelFitError, WorkerFatalError
from mixscreen.parallel import screen_genes
from mixscreen.screen import run_screen, run_screen_pipeline

__all__ = [
    "__version__",
    "FeatureTable",
    "ScreenConfig",
    "GeneFitSuccess",
    "GeneFitFailure",
    "ScreenResultTable",
    "ConfigurationError",
    "ModelFitError",
    "WorkerFatalError",
    "build_formula",
    "fit_gene",
    "screen_genes",
    "aggregate_results",
    "select_candidate_genes",
    "run_screen",
    "run_screen_pipeline",
]
