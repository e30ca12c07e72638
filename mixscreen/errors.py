"""Exception taxonomy for gene-wise screening."""

from __future__ import annotations

from typing import Iterable


class MixScreenError(Exception):
    """Base class for mixscreen errors."""


class ConfigurationError(MixScreenError, ValueError):
    """Malformed screen inputs detected before any per-gene work starts."""


class ModelFitError(MixScreenError):
    """Recoverable numerical failure while fitting one gene."""

    def __init__(self, gene: str, reason: str):
        super().__init__(f"Model fit failed for gene '{gene}': {reason}")
        self.gene = gene
        self.reason = reason

    def __reduce__(self):
        return type(self), (self.gene, self.reason)


class WorkerFatalError(MixScreenError, RuntimeError):
    """Infrastructure failure that aborts the whole screen."""

    def __init__(self, message: str, genes: Iterable[str] = ()):
        self.message = message
        self.genes = tuple(str(g) for g in genes)
        if self.genes:
            head = ", ".join(self.genes[:10])
            more = "..." if len(self.genes) > 10 else ""
            message = f"{message} (genes in flight: {head}{more})"
        super().__init__(message)

    # Workers in another process send the error back pickled.
    def __reduce__(self):
        return type(self), (self.message, self.genes)
