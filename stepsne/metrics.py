"""
Quality measures for a finished embedding.
"""

import numpy as np
from scipy.spatial.distance import pdist, squareform
from sklearn.neighbors import NearestNeighbors


def cluster_separation_ratio(Y, labels):
    """
    Mean intra-cluster pair distance divided by mean inter-cluster pair
    distance.

    Values well below 1 mean clusters are kept apart.

    Parameters
    ----------
    Y : ndarray of shape (n_samples, n_components)
        Embedding.
    labels : ndarray of shape (n_samples,)
        Cluster tags; at least two distinct values are required.

    Returns
    -------
    ratio : float
    """
    Y = np.asarray(Y, dtype=np.float64)
    labels = np.asarray(labels)
    if len(np.unique(labels)) < 2:
        raise ValueError("At least two clusters are needed")

    D = squareform(pdist(Y))
    same = labels[:, np.newaxis] == labels[np.newaxis, :]
    off_diag = ~np.eye(len(labels), dtype=bool)

    intra = D[same & off_diag]
    inter = D[~same]
    if intra.size == 0:
        return 0.0
    return float(intra.mean() / inter.mean())


def knn_recall(X_high, X_low, k=10):
    """
    Fraction of each point's k nearest high-dimensional neighbours that are
    also among its k nearest neighbours in the embedding.
    """
    n_samples = X_high.shape[0]
    k = min(k, n_samples - 1)

    _, idx_high = NearestNeighbors(n_neighbors=k + 1).fit(X_high).kneighbors(X_high)
    _, idx_low = NearestNeighbors(n_neighbors=k + 1).fit(X_low).kneighbors(X_low)

    recalls = [len(set(idx_high[i, 1:]) & set(idx_low[i, 1:])) / k
               for i in range(n_samples)]
    return float(np.mean(recalls))


def trustworthiness(X_high, X_low, k=10):
    """
    Trustworthiness of an embedding: penalizes points that become false
    neighbours in low dimension, weighted by their high-dimensional rank.

    Parameters
    ----------
    X_high : ndarray of shape (n_samples, n_features)
        Input points.
    X_low : ndarray of shape (n_samples, n_components)
        Embedding.
    k : int, default=10
        Neighbourhood size.

    Returns
    -------
    T : float
        Score in [0, 1], higher is better.
    """
    n = X_high.shape[0]
    k = min(k, n - 1)

    _, idx_high = NearestNeighbors(n_neighbors=n).fit(X_high).kneighbors(X_high)
    _, idx_low = NearestNeighbors(n_neighbors=k + 1).fit(X_low).kneighbors(X_low)

    ranks_high = np.zeros((n, n), dtype=int)
    rows = np.arange(n)[:, np.newaxis]
    ranks_high[rows, idx_high] = np.arange(n)[np.newaxis, :]

    penalty = 0
    for i in range(n):
        false_neighbors = set(idx_low[i, 1:]) - set(idx_high[i, 1:k + 1])
        for j in false_neighbors:
            penalty += ranks_high[i, j] - k

    max_penalty = n * k * (2 * n - 3 * k - 1) / 2
    if max_penalty <= 0:
        return 1.0
    return max(0.0, 1 - (2 / max_penalty) * penalty)
