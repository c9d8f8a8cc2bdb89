"""
High-dimensional probability construction: conditional matrix, symmetric
joint matrix and early exaggeration.
"""

import numpy as np

from .bandwidth import conditional_probabilities
from .math_utils import EPSILON


def conditional_matrix(D, sigmas):
    """
    Build the conditional probability matrix P(j|i).

    Parameters
    ----------
    D : ndarray of shape (n_samples, n_samples)
        Squared distance matrix.
    sigmas : array-like of shape (n_samples,)
        Per-point bandwidths.

    Returns
    -------
    P_cond : ndarray of shape (n_samples, n_samples)
        Row i holds p(j|i); the diagonal is zero and every non-degenerate
        row sums to 1.
    """
    D = np.asarray(D, dtype=np.float64)
    n_samples = D.shape[0]
    P_cond = np.zeros((n_samples, n_samples))
    for i in range(n_samples):
        P_cond[i] = conditional_probabilities(D[i], sigmas[i], i)
    return P_cond


def joint_probabilities(P_cond):
    """
    Symmetrize conditional probabilities into the joint matrix
    P_ij = (p(j|i) + p(i|j)) / 2N, floored at EPSILON.
    """
    P_cond = np.asarray(P_cond, dtype=np.float64)
    n_samples = P_cond.shape[0]
    P = (P_cond + P_cond.T) / (2.0 * n_samples)
    return np.maximum(P, EPSILON)


def apply_exaggeration(P, factor):
    """Return P scaled by the early exaggeration factor."""
    return np.asarray(P, dtype=np.float64) * factor


def remove_exaggeration(P, factor=None, original=None):
    """
    Undo early exaggeration.

    Restores from `original` when it is given, which is exact. Otherwise
    divides by `factor`.
    """
    if original is not None:
        return np.array(original, dtype=np.float64, copy=True)
    if factor is None:
        raise ValueError("Either factor or original must be given")
    return np.asarray(P, dtype=np.float64) / factor
