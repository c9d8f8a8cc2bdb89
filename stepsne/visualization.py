"""
Matplotlib rendering of recorded snapshots.

Renderers read snapshot contents only; they never touch a live run.
"""

import numpy as np
import matplotlib.pyplot as plt

from .phases import Phase


def plot_embedding(snapshot, ax=None, cmap='viridis', point_size=30, alpha=0.8):
    """
    Scatter plot of the embedding held by a snapshot.

    One-dimensional embeddings are drawn along the x axis.

    Parameters
    ----------
    snapshot : Snapshot
        Snapshot with an 'embedding' entry.
    ax : matplotlib.axes.Axes or None
        Axes to plot on. Creates a new figure if None.

    Returns
    -------
    ax : matplotlib.axes.Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 6))

    Y = snapshot['embedding']
    y = Y[:, 1] if Y.shape[1] > 1 else np.zeros(len(Y))
    ax.scatter(Y[:, 0], y, c=snapshot.labels, cmap=cmap, s=point_size, alpha=alpha)
    ax.set_title(f"{snapshot.phase.value} (iteration {snapshot.iteration})")
    ax.set_xticks([])
    ax.set_yticks([])
    return ax


def plot_matrix(snapshot, key, ax=None, cmap='magma', colorbar=True):
    """
    Heatmap of an N x N matrix held by a snapshot, e.g. 'distance_matrix',
    'P' or 'Q'.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))

    M = snapshot[key]
    im = ax.imshow(M, cmap=cmap, interpolation='nearest')
    if colorbar:
        plt.colorbar(im, ax=ax)
    ax.set_title(key)
    return ax


def plot_cost_history(snapshot, ax=None, exaggeration_iter=None):
    """
    KL divergence per iteration from a COMPLETE snapshot.

    Parameters
    ----------
    snapshot : Snapshot
        Snapshot with a 'costs' entry of (iteration, cost) rows.
    ax : matplotlib.axes.Axes or None
        Axes to plot on.
    exaggeration_iter : int or None
        If given, mark where exaggeration was removed.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 4))

    costs = np.asarray(snapshot['costs'])
    ax.plot(costs[:, 0], costs[:, 1], linewidth=1.5)
    if exaggeration_iter is not None:
        ax.axvline(exaggeration_iter, color='gray', linestyle='--', alpha=0.7)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('KL divergence')
    ax.grid(True, alpha=0.3)
    return ax


def plot_sigma_search(snapshot, ax=None):
    """Perplexity reached by each probe of the recorded sigma searches."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 4))

    for trace in snapshot['search_history']:
        history = np.asarray(trace['history'])
        if len(history) == 0:
            continue
        ax.plot(history[:, 0], history[:, 2], marker='o', markersize=3,
                label=f"point {trace['point_index']}")

    ax.axhline(snapshot['target_perplexity'], color='red', linestyle='--',
               alpha=0.7, label='target')
    ax.set_xlabel('Search iteration')
    ax.set_ylabel('Perplexity')
    ax.legend()
    return ax


def plot_snapshot(snapshot, ax=None):
    """Draw whatever best represents the snapshot's phase."""
    phase = snapshot.phase
    if phase is Phase.INIT:
        if ax is None:
            fig = plt.figure(figsize=(6, 6))
            ax = fig.add_subplot(projection='3d')
        X = snapshot['points'][:, :3]
        X = np.pad(X, ((0, 0), (0, 3 - X.shape[1])))
        ax.scatter(X[:, 0], X[:, 1], X[:, 2], c=snapshot.labels, cmap='viridis')
        ax.set_title('input points')
        return ax
    if phase is Phase.COMPUTE_DISTANCES:
        return plot_matrix(snapshot, 'distance_matrix', ax=ax)
    if phase is Phase.COMPUTE_SIGMAS:
        return plot_sigma_search(snapshot, ax=ax)
    if phase in (Phase.COMPUTE_P_CONDITIONAL,):
        return plot_matrix(snapshot, 'p_conditional', ax=ax)
    if phase in (Phase.SYMMETRIZE_P, Phase.REMOVE_EXAGGERATION):
        return plot_matrix(snapshot, 'P', ax=ax)
    if phase is Phase.APPLY_EARLY_EXAGGERATION:
        return plot_matrix(snapshot, 'P_exaggerated', ax=ax)
    if phase is Phase.COMPUTE_Q:
        return plot_matrix(snapshot, 'Q', ax=ax)
    return plot_embedding(snapshot, ax=ax)
