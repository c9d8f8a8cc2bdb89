"""
Input checking for point sets and labels.
"""

import numpy as np
from sklearn.utils import check_array

from .config import ConfigurationError


def check_points(X):
    """
    Validate and convert input points to a float64 array.

    Parameters
    ----------
    X : array-like of shape (n_samples, n_features)
        Input points. Every point must have the same number of finite
        coordinates.

    Returns
    -------
    X : ndarray of shape (n_samples, n_features)

    Raises
    ------
    ConfigurationError
        For empty, ragged, non-2D or non-finite input.
    """
    if isinstance(X, (list, tuple)):
        if len(X) == 0:
            raise ConfigurationError("At least 2 points are required, got 0")
        lengths = {len(np.atleast_1d(x)) for x in X}
        if len(lengths) > 1:
            raise ConfigurationError(
                f"All points must have the same dimensionality, got {sorted(lengths)}")

    try:
        X = check_array(X, dtype=np.float64, ensure_2d=True,
                        ensure_min_samples=1, ensure_min_features=1)
    except ValueError as e:
        raise ConfigurationError(f"Invalid input points: {e}") from e
    return X


def check_labels(labels, n_samples):
    """
    Validate point labels, defaulting to all zeros.

    Labels are carried through snapshots only and never affect the run.
    """
    if labels is None:
        return np.zeros(n_samples, dtype=int)
    labels = np.asarray(labels)
    if labels.ndim != 1 or labels.shape[0] != n_samples:
        raise ConfigurationError(
            f"Expected {n_samples} labels, got shape {labels.shape}")
    return labels.copy()
