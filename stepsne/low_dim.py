"""
Student-t similarities in the embedding space.
"""

import numpy as np

from .math_utils import EPSILON, distance_matrix


def student_t_kernel(Y):
    """Unnormalized kernel (1 + ||y_i - y_j||^2)^-1 with a zero diagonal."""
    num = 1.0 / (1.0 + distance_matrix(Y))
    np.fill_diagonal(num, 0.0)
    return num


def q_matrix(Y):
    """
    Compute the low-dimensional joint probabilities Q.

    Parameters
    ----------
    Y : ndarray of shape (n_samples, n_components)
        Current embedding.

    Returns
    -------
    Q : ndarray of shape (n_samples, n_samples)
        Kernel values normalized over all ordered pairs i != j, floored at
        EPSILON off the diagonal. Q[i, i] == 0.
    Q_unnorm : ndarray of shape (n_samples, n_samples)
        The kernel values before normalization, needed by the gradient.
    """
    Q_unnorm = student_t_kernel(Y)
    Q = np.maximum(Q_unnorm / Q_unnorm.sum(), EPSILON)
    np.fill_diagonal(Q, 0.0)
    return Q, Q_unnorm
