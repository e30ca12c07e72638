"""Statistical utilities for mixscreen."""

from mixscreen.stats.multitest import adjust_pvalues, bh_fdr, bonferroni

__all__ = [
    "adjust_pvalues",
    "bonferroni",
    "bh_fdr",
]
