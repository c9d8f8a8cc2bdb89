"""
Per-point bandwidth (sigma) search.

Each point gets its own Gaussian bandwidth, found by binary search on the
entropy of its conditional neighbour distribution so that the perplexity
matches a target value.
"""

import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .math_utils import EPSILON, shannon_entropy, entropy_to_perplexity

log = logging.getLogger(__name__)

SIGMA_MIN = 1e-10
SIGMA_MAX = 1e10


@dataclass(frozen=True)
class SearchStep:
    """One probe of the binary search."""
    iteration: int
    sigma: float
    perplexity: float


@dataclass(frozen=True, eq=False)
class SigmaSearchResult:
    """Outcome of the bandwidth search for a single point."""
    sigma: float
    probabilities: np.ndarray
    entropy: float
    perplexity: float
    converged: bool
    n_iter: int
    history: Tuple[SearchStep, ...] = field(default=())

    def __post_init__(self):
        self.probabilities.setflags(write=False)


def conditional_probabilities(distances, sigma, index):
    """
    Gaussian-kernel conditional probabilities p(j|i) for one point.

    Parameters
    ----------
    distances : ndarray of shape (n_samples,)
        Squared distances from point `index` to every point.
    sigma : float
        Gaussian bandwidth.
    index : int
        Position of the centre point, excluded from the distribution.

    Returns
    -------
    P : ndarray of shape (n_samples,)
        Probabilities summing to 1, with P[index] == 0. If every neighbour is
        numerically unreachable the row is returned all-zero.
    """
    distances = np.asarray(distances, dtype=np.float64)
    P = np.exp(-distances / (2.0 * sigma * sigma))
    P[index] = 0.0

    total = P.sum()
    if total > EPSILON:
        P /= total
    else:
        P[:] = 0.0
    return P


def find_sigma(distances, index, perplexity, return_history=False,
               max_iter=50, tol=1e-5):
    """
    Binary search for the sigma whose conditional distribution has the
    target perplexity.

    Entropy grows with sigma. The bracket starts at (1e-10, 1e10) with a first
    guess of 1.0; while the upper bound is still untouched, sigma doubles
    instead of jumping halfway to 1e10. When the search does not reach `tol`
    within `max_iter` probes, the last iterate is returned with
    ``converged=False``.

    Parameters
    ----------
    distances : ndarray of shape (n_samples,)
        Squared distances from point `index` to every point.
    index : int
        Position of the centre point.
    perplexity : float
        Target perplexity.
    return_history : bool, default=False
        Whether to keep every (iteration, sigma, perplexity) probe.
    max_iter : int, default=50
        Maximum number of probes.
    tol : float, default=1e-5
        Tolerance on the entropy, in bits.

    Returns
    -------
    result : SigmaSearchResult
    """
    target_entropy = np.log2(perplexity)

    sigma_min = SIGMA_MIN
    sigma_max = SIGMA_MAX
    sigma = 1.0
    history = []

    for it in range(max_iter):
        P = conditional_probabilities(distances, sigma, index)
        entropy = shannon_entropy(P)
        perp = entropy_to_perplexity(entropy)

        if return_history:
            history.append(SearchStep(it, sigma, perp))

        diff = entropy - target_entropy
        if abs(diff) < tol:
            return SigmaSearchResult(sigma, P, entropy, perp, True, it + 1,
                                     tuple(history))

        if diff > 0:
            # Too flat: shrink
            sigma_max = sigma
            sigma = (sigma_min + sigma) / 2.0
        else:
            sigma_min = sigma
            if sigma_max == SIGMA_MAX:
                sigma = sigma * 2.0
            else:
                sigma = (sigma + sigma_max) / 2.0

    P = conditional_probabilities(distances, sigma, index)
    entropy = shannon_entropy(P)
    perp = entropy_to_perplexity(entropy)
    return SigmaSearchResult(sigma, P, entropy, perp, False, max_iter,
                             tuple(history))


def compute_sigmas(D, perplexity, max_iter=50, tol=1e-5, n_traces=None):
    """
    Run the bandwidth search for every row of a distance matrix.

    Parameters
    ----------
    D : ndarray of shape (n_samples, n_samples)
        Squared distance matrix.
    perplexity : float
        Target perplexity shared by all points.
    max_iter, tol :
        Passed to :func:`find_sigma`.
    n_traces : int or None, default=None
        Keep the search history for the first `n_traces` points only.
        None keeps every history.

    Returns
    -------
    results : list of SigmaSearchResult
    """
    D = np.asarray(D, dtype=np.float64)
    n_samples = D.shape[0]
    results = []
    for i in range(n_samples):
        keep = n_traces is None or i < n_traces
        results.append(find_sigma(D[i], i, perplexity, return_history=keep,
                                  max_iter=max_iter, tol=tol))

    n_failed = sum(not r.converged for r in results)
    if n_failed:
        log.warning(
            "Sigma search did not reach perplexity %.3f within %d iterations "
            "for %d of %d points; using best-effort bandwidths.",
            perplexity, max_iter, n_failed, n_samples
        )
    return results
