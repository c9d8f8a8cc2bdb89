"""
Small synthetic 3D datasets for demonstrating the algorithm.

Every generator returns (points, labels) with points of shape
(n_samples, 3) and integer labels.
"""

import numpy as np
from sklearn.datasets import make_swiss_roll
from sklearn.utils import check_random_state


def make_3d_blobs(n_clusters=3, points_per_cluster=15, cluster_spread=0.5,
                  cluster_separation=4.0, random_state=None):
    """
    Gaussian clusters whose centres sit on a sphere.

    Centres are spread evenly in azimuth and alternate between the upper
    and lower hemisphere.

    Parameters
    ----------
    n_clusters : int, default=3
        Number of clusters.
    points_per_cluster : int, default=15
        Points drawn around each centre.
    cluster_spread : float, default=0.5
        Standard deviation of each cluster.
    cluster_separation : float, default=4.0
        Radius of the sphere holding the centres.
    random_state : int, RandomState or None
        Random seed.

    Returns
    -------
    points : ndarray of shape (n_clusters * points_per_cluster, 3)
    labels : ndarray of shape (n_clusters * points_per_cluster,)
    """
    rng = check_random_state(random_state)

    c = np.arange(n_clusters)
    phi = 2 * np.pi * c / n_clusters
    theta = np.pi * (0.3 + 0.4 * (c % 2))
    centers = np.column_stack([
        cluster_separation * np.sin(theta) * np.cos(phi),
        cluster_separation * np.sin(theta) * np.sin(phi),
        cluster_separation * np.cos(theta) * np.where(c % 2 == 0, 1.0, -0.5),
    ])

    labels = np.repeat(c, points_per_cluster)
    points = centers[labels] + rng.normal(0.0, cluster_spread,
                                          size=(len(labels), 3))
    return points, labels


def make_3d_swiss_roll(n_samples=60, noise=0.1, n_segments=3, random_state=None):
    """
    Swiss roll labelled by position along the roll.

    Parameters
    ----------
    n_samples : int, default=60
        Number of points.
    noise : float, default=0.1
        Standard deviation of the Gaussian noise.
    n_segments : int, default=3
        Number of equal-width label bands along the roll.
    random_state : int, RandomState or None
        Random seed.
    """
    points, t = make_swiss_roll(n_samples=n_samples, noise=noise,
                                random_state=random_state)
    # Bring the roll to roughly the same scale as the blobs
    points = points / 3.0
    edges = np.linspace(t.min(), t.max(), n_segments + 1)[1:-1]
    labels = np.digitize(t, edges)
    return points, labels


def make_3d_helix(n_samples=60, n_turns=2.0, radius=2.0, pitch=1.0,
                  noise=0.1, n_segments=3, random_state=None):
    """Points along a helix, labelled by segment."""
    rng = check_random_state(random_state)
    t = np.sort(rng.uniform(0.0, 2 * np.pi * n_turns, n_samples))
    points = np.column_stack([
        radius * np.cos(t),
        radius * np.sin(t),
        pitch * t / (2 * np.pi),
    ])
    points += rng.normal(0.0, noise, size=points.shape)
    labels = np.minimum((t / (2 * np.pi * n_turns) * n_segments).astype(int),
                        n_segments - 1)
    return points, labels


def make_3d_layers(n_layers=3, points_per_layer=20, layer_gap=2.0,
                   layer_size=3.0, noise=0.1, random_state=None):
    """Parallel horizontal sheets stacked along z, one label per sheet."""
    rng = check_random_state(random_state)
    labels = np.repeat(np.arange(n_layers), points_per_layer)
    xy = rng.uniform(-layer_size / 2, layer_size / 2, size=(len(labels), 2))
    z = (labels - (n_layers - 1) / 2.0) * layer_gap
    points = np.column_stack([xy, z]) + rng.normal(0.0, noise, size=(len(labels), 3))
    return points, labels


_GENERATORS = {
    'blobs': make_3d_blobs,
    'swiss_roll': make_3d_swiss_roll,
    'helix': make_3d_helix,
    'layers': make_3d_layers,
}


def make_dataset(name, **kwargs):
    """
    Generate a dataset by name: 'blobs', 'swiss_roll', 'helix' or 'layers'.
    """
    try:
        generator = _GENERATORS[name]
    except KeyError:
        raise ValueError(
            f"Unknown dataset: {name}. Choose from {sorted(_GENERATORS)}") from None
    return generator(**kwargs)
