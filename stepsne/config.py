"""
Run configuration for the stepwise t-SNE engine.
"""

import math
from dataclasses import dataclass, fields
from typing import Optional, Tuple

DEFAULT_CAPTURE_ITERATIONS = (0, 5, 10, 25, 50, 75, 100, 150, 200, 300, 400)


class ConfigurationError(ValueError):
    """Raised when parameters or input data cannot produce a meaningful run."""


@dataclass(frozen=True)
class TSNEConfig:
    """Parameters of a single t-SNE run."""

    # Embedding
    n_components: int = 2
    perplexity: float = 30.0
    init_scale: float = 1e-4
    random_state: Optional[int] = None

    # Optimization
    learning_rate: float = 200.0
    max_iter: int = 500
    early_exaggeration: float = 4.0
    exaggeration_iter: int = 100
    initial_momentum: float = 0.5
    final_momentum: float = 0.8
    momentum_switch_iter: int = 250

    # Bandwidth search
    sigma_max_iter: int = 50
    sigma_tol: float = 1e-5

    # Snapshot capture policy
    capture_iterations: Optional[Tuple[int, ...]] = None
    capture_every: Optional[int] = None
    n_search_traces: int = 3

    @classmethod
    def from_estimator(cls, estimator):
        """Collect the config fields from an estimator's attributes."""
        names = {f.name for f in fields(cls)}
        params = {name: getattr(estimator, name) for name in names
                  if hasattr(estimator, name)}
        if params.get('capture_iterations') is not None:
            params['capture_iterations'] = tuple(params['capture_iterations'])
        return cls(**params)

    def validate(self, n_samples=None):
        """
        Check parameter ranges, and the perplexity against the dataset size
        when `n_samples` is given.

        Raises
        ------
        ConfigurationError
        """
        if self.n_components < 1:
            raise ConfigurationError(
                f"n_components must be at least 1, got {self.n_components}")
        if not self.perplexity >= 1:
            raise ConfigurationError(
                f"perplexity must be at least 1, got {self.perplexity}")
        if not self.learning_rate > 0:
            raise ConfigurationError(
                f"learning_rate must be positive, got {self.learning_rate}")
        if self.max_iter < 1:
            raise ConfigurationError(
                f"max_iter must be at least 1, got {self.max_iter}")
        if not self.early_exaggeration > 0:
            raise ConfigurationError(
                f"early_exaggeration must be positive, got {self.early_exaggeration}")
        if self.exaggeration_iter < 0 or self.momentum_switch_iter < 0:
            raise ConfigurationError("Iteration cutoffs must be non-negative")
        for name in ('initial_momentum', 'final_momentum'):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise ConfigurationError(f"{name} must lie in [0, 1), got {value}")
        if not self.init_scale > 0:
            raise ConfigurationError(
                f"init_scale must be positive, got {self.init_scale}")
        if self.sigma_max_iter < 1 or not self.sigma_tol > 0:
            raise ConfigurationError("Sigma search needs max_iter >= 1 and tol > 0")
        if self.capture_every is not None and self.capture_every < 1:
            raise ConfigurationError(
                f"capture_every must be at least 1, got {self.capture_every}")
        if self.capture_iterations is not None and any(
                it < 0 for it in self.capture_iterations):
            raise ConfigurationError("capture_iterations must be non-negative")
        if self.n_search_traces < 0:
            raise ConfigurationError("n_search_traces must be non-negative")

        if n_samples is not None:
            if n_samples < 2:
                raise ConfigurationError(
                    f"At least 2 points are required, got {n_samples}")
            if 3 * self.perplexity > n_samples - 1:
                raise ConfigurationError(
                    f"perplexity={self.perplexity} is too large for {n_samples} "
                    f"points; it must satisfy 3 * perplexity <= n_samples - 1 "
                    f"(at most {max_perplexity(n_samples):g})")
        return self


def max_perplexity(n_samples):
    """Largest perplexity accepted for `n_samples` points."""
    return (n_samples - 1) / 3.0


def clamp_perplexity(perplexity, n_samples):
    """
    Clamp a requested perplexity to floor((n_samples - 1) / 3).

    The engine rejects perplexities that are too large; callers that prefer
    to adapt use this helper first.
    """
    return min(perplexity, math.floor(max_perplexity(n_samples)))
