"""Multiple-testing corrections that ignore unavailable p-values."""

from __future__ import annotations

import numpy as np

from mixscreen.errors import ConfigurationError


def _on_finite(pvals: np.ndarray, adjust) -> np.ndarray:
    """Apply ``adjust`` to the finite p-values only; NaN entries stay NaN."""
    arr = np.asarray(pvals, dtype=float)
    flat = arr.ravel()
    keep = np.isfinite(flat)
    p = flat[keep]
    if np.any((p < 0.0) | (p > 1.0)):
        raise ValueError("p-values must be within [0, 1] (or NaN).")
    out = np.full(flat.shape, np.nan)
    if p.size:
        out[keep] = adjust(p)
    return out.reshape(arr.shape)


def bonferroni(pvals: np.ndarray) -> np.ndarray:
    """Bonferroni: ``min(1, p * m)`` with ``m`` = number of finite p-values.

    NaN entries stay NaN and do not count toward ``m``.
    """
    return _on_finite(pvals, lambda p: np.minimum(1.0, p * p.size))


def _bh_step_up(p: np.ndarray) -> np.ndarray:
    m = p.size
    # Largest p first, so the running minimum enforces monotone q-values.
    desc = np.argsort(p, kind="mergesort")[::-1]
    scaled = p[desc] * m / np.arange(m, 0, -1)
    q = np.empty(m)
    q[desc] = np.minimum(1.0, np.minimum.accumulate(scaled))
    return q


def bh_fdr(pvals: np.ndarray) -> np.ndarray:
    """Benjamini-Hochberg q-values over the finite p-values."""
    return _on_finite(pvals, _bh_step_up)


CORRECTIONS = {
    "bonferroni": bonferroni,
    "fdr_bh": bh_fdr,
}


def adjust_pvalues(pvals: np.ndarray, method: str = "bonferroni") -> np.ndarray:
    try:
        func = CORRECTIONS[method]
    except KeyError:
        raise ConfigurationError(
            f"Unknown correction '{method}'. Choose one of: {', '.join(CORRECTIONS)}."
        ) from None
    return func(pvals)
