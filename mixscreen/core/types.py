"""Typed configuration and result containers for gene-wise screening."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Union

from mixscreen.errors import ConfigurationError

CORRECTION_METHODS: tuple[str, ...] = ("bonferroni", "fdr_bh")
BACKENDS: tuple[str, ...] = ("loky", "threading", "sequential")
CONFIG_ALIASES: dict[str, str] = {
    "worker_pool_size": "n_jobs",
    "correction_method": "correction",
    "covariate_names": "covariates",
    "response_name": "response",
    "group_name": "group",
}


@dataclass(frozen=True)
class ScreenConfig:
    """Configuration for one screen run."""

    covariates: tuple[str, ...] = ()
    response: str = "contractile_score"
    group: str = "sample"
    n_jobs: int | None = None
    correction: str = "bonferroni"
    backend: str = "loky"
    batch_size: int = 25
    gene_timeout: float | None = None
    reml: bool = True
    fit_methods: tuple[str, ...] = ("lbfgs", "powell")

    def __post_init__(self) -> None:
        object.__setattr__(self, "covariates", tuple(str(c) for c in self.covariates))
        object.__setattr__(self, "fit_methods", tuple(str(m) for m in self.fit_methods))
        self.validate()

    def validate(self) -> None:
        names = [self.response, self.group, *self.covariates]
        for name in names:
            if str(name).strip() == "":
                raise ConfigurationError("Column names must be non-empty strings.")
        if len(set(names)) != len(names):
            raise ConfigurationError(
                "response, group and covariate names must be distinct; "
                f"got {names}."
            )
        if self.n_jobs is not None and int(self.n_jobs) < 1:
            raise ConfigurationError(f"n_jobs must be >= 1 (got {self.n_jobs}).")
        if self.correction not in CORRECTION_METHODS:
            raise ConfigurationError(
                f"Unknown correction '{self.correction}'. "
                f"Choose one of: {', '.join(CORRECTION_METHODS)}."
            )
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{self.backend}'. Choose one of: {', '.join(BACKENDS)}."
            )
        if int(self.batch_size) < 1:
            raise ConfigurationError(f"batch_size must be >= 1 (got {self.batch_size}).")
        if self.gene_timeout is not None:
            timeout = float(self.gene_timeout)
            if not math.isfinite(timeout) or timeout <= 0:
                raise ConfigurationError("gene_timeout must be a positive number.")
        if not self.fit_methods:
            raise ConfigurationError("fit_methods must name at least one optimizer.")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScreenConfig":
        """Build a config from a JSON-style mapping, rejecting unknown keys."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Screen config must be a mapping, got {type(data).__name__}."
            )
        kwargs = dict(data)
        for alias, key in CONFIG_ALIASES.items():
            if alias in kwargs:
                if key in kwargs:
                    raise ConfigurationError(f"Specify only one of '{key}' and '{alias}'.")
                kwargs[key] = kwargs.pop(alias)

        unknown = sorted(set(kwargs) - set(cls.__dataclass_fields__))
        if unknown:
            raise ConfigurationError(f"Unknown screen config keys: {', '.join(unknown)}.")
        for key in ("covariates", "fit_methods"):
            if key in kwargs:
                value = kwargs[key]
                if isinstance(value, str):
                    raise ConfigurationError(f"'{key}' must be a list of strings.")
                kwargs[key] = tuple(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class GeneFitSuccess:
    """Fitted gene term: effect estimate, two-sided p-value and |z| importance."""

    gene: str
    beta: float
    p_value: float
    vip: float


@dataclass(frozen=True)
class GeneFitFailure:
    """A gene whose model could not be fitted; every numeric field is unavailable."""

    gene: str
    reason: str


GeneResult = Union[GeneFitSuccess, GeneFitFailure]
