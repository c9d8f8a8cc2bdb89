"""
KL-divergence cost, its gradient and the momentum update.

Vectorized over all pairs; intended for tens to hundreds of points.
"""

import numpy as np

from .math_utils import EPSILON, gradient_magnitude


def kl_divergence(P, Q):
    """
    KL(P || Q) = sum_{i != j} P_ij * log(P_ij / Q_ij).

    Only entries with P_ij above EPSILON contribute.
    """
    P = np.asarray(P, dtype=np.float64)
    Q = np.asarray(Q, dtype=np.float64)
    mask = P > EPSILON
    np.fill_diagonal(mask, False)
    return float(np.sum(P[mask] * np.log(P[mask] / Q[mask])))


def kl_gradient(P, Q, Q_unnorm, Y):
    """
    Gradient of the KL divergence with respect to the embedding.

    dC/dy_i = 4 * sum_j (P_ij - Q_ij) * (1 + ||y_i - y_j||^2)^-1 * (y_i - y_j)

    Parameters
    ----------
    P : ndarray of shape (n_samples, n_samples)
        High-dimensional joint probabilities.
    Q : ndarray of shape (n_samples, n_samples)
        Normalized low-dimensional probabilities.
    Q_unnorm : ndarray of shape (n_samples, n_samples)
        Student-t kernel values, zero on the diagonal.
    Y : ndarray of shape (n_samples, n_components)
        Embedding the kernel was computed from.

    Returns
    -------
    grad : ndarray of shape (n_samples, n_components)
    """
    Y = np.asarray(Y, dtype=np.float64)
    W = (np.asarray(P) - np.asarray(Q)) * np.asarray(Q_unnorm)
    # sum_j W_ij (y_i - y_j) = y_i * sum_j W_ij - (W @ Y)_i
    return 4.0 * (W.sum(axis=1)[:, np.newaxis] * Y - W @ Y)


def momentum_at(iteration, initial=0.5, final=0.8, switch_iter=250):
    """Two-phase momentum schedule."""
    return initial if iteration < switch_iter else final


def center_embedding(Y):
    """Subtract the per-dimension mean so the embedding stays at the origin."""
    Y = np.asarray(Y, dtype=np.float64)
    return Y - Y.mean(axis=0)


def update_embedding(Y, velocity, gradient, learning_rate, momentum):
    """
    One momentum gradient-descent step followed by centering.

    Returns new arrays; the inputs are left untouched.

    Returns
    -------
    Y_new : ndarray of shape (n_samples, n_components)
    velocity_new : ndarray of shape (n_samples, n_components)
    """
    velocity_new = momentum * np.asarray(velocity) - learning_rate * np.asarray(gradient)
    Y_new = center_embedding(np.asarray(Y) + velocity_new)
    return Y_new, velocity_new


def point_forces(P, Q, i):
    """
    Split the partners of point `i` into attractive and repulsive ones.

    A partner j attracts when P_ij > Q_ij and repels otherwise. Both lists
    hold dicts with keys 'j', 'p', 'q', 'force' and are sorted by decreasing
    force.
    """
    P = np.asarray(P)
    Q = np.asarray(Q)
    attractive, repulsive = [], []
    for j in range(P.shape[0]):
        if j == i:
            continue
        diff = P[i, j] - Q[i, j]
        entry = {'j': j, 'p': float(P[i, j]), 'q': float(Q[i, j]),
                 'force': float(abs(diff))}
        if diff > 0:
            attractive.append(entry)
        else:
            repulsive.append(entry)

    attractive.sort(key=lambda e: e['force'], reverse=True)
    repulsive.sort(key=lambda e: e['force'], reverse=True)
    return attractive, repulsive


def gradient_details(P, Q, gradient, i):
    """Gradient vector, its magnitude and the force breakdown for point `i`."""
    attractive, repulsive = point_forces(P, Q, i)
    return {
        'point_index': i,
        'gradient': np.array(gradient[i], copy=True),
        'magnitude': gradient_magnitude(gradient[i]),
        'attractive_forces': attractive,
        'repulsive_forces': repulsive,
    }
