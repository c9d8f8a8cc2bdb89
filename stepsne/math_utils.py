"""
Vector and matrix primitives shared by the t-SNE phases.
"""

import numpy as np
from scipy.spatial.distance import pdist, squareform

EPSILON = 1e-12


def squared_euclidean_distance(a, b):
    """Sum of squared per-dimension differences between two points."""
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(np.dot(diff, diff))


def euclidean_distance(a, b):
    """Euclidean distance between two points."""
    return float(np.sqrt(squared_euclidean_distance(a, b)))


def distance_matrix(X):
    """
    Compute the pairwise squared Euclidean distance matrix.

    Each unordered pair is computed once (condensed upper triangle) and
    mirrored, so the result is symmetric with a zero diagonal.

    Parameters
    ----------
    X : ndarray of shape (n_samples, n_features)
        Input points.

    Returns
    -------
    D : ndarray of shape (n_samples, n_samples)
        Squared distances.
    """
    X = np.asarray(X, dtype=np.float64)
    if X.shape[0] < 2:
        return np.zeros((X.shape[0], X.shape[0]))
    return squareform(pdist(X, metric='sqeuclidean'))


def shannon_entropy(P):
    """
    Shannon entropy in bits, H = -sum(p * log2(p)).

    Entries at or below EPSILON contribute nothing.
    """
    P = np.asarray(P, dtype=np.float64)
    p = P[P > EPSILON]
    return float(-np.sum(p * np.log2(p)))


def entropy_to_perplexity(entropy):
    """Perplexity 2^H of an entropy measured in bits."""
    return float(2.0 ** entropy)


def gradient_magnitude(grad_point):
    """Length of a single point's gradient vector."""
    return float(np.linalg.norm(grad_point))
