from .core import StepwiseTSNE, precompute_tsne
from .config import (
    TSNEConfig,
    ConfigurationError,
    clamp_perplexity,
    max_perplexity
)
from .phases import Phase, TSNEState, initial_state, advance, next_phase, run_to_completion
from .snapshots import Snapshot, SnapshotRecorder
from .math_utils import (
    squared_euclidean_distance,
    euclidean_distance,
    distance_matrix,
    shannon_entropy,
    entropy_to_perplexity
)
from .bandwidth import (
    SigmaSearchResult,
    conditional_probabilities,
    find_sigma,
    compute_sigmas
)
from .probabilities import (
    conditional_matrix,
    joint_probabilities,
    apply_exaggeration,
    remove_exaggeration
)
from .low_dim import q_matrix
from .optimizer import (
    kl_divergence,
    kl_gradient,
    momentum_at,
    center_embedding,
    update_embedding
)
from .datasets import (
    make_3d_blobs,
    make_3d_swiss_roll,
    make_3d_helix,
    make_3d_layers,
    make_dataset
)
from .metrics import cluster_separation_ratio, knn_recall, trustworthiness
from .visualization import (
    plot_embedding,
    plot_matrix,
    plot_cost_history,
    plot_sigma_search,
    plot_snapshot
)

__version__ = "0.1.0"
__all__ = [
    # Core
    "StepwiseTSNE",
    "precompute_tsne",
    "Phase",
    "TSNEState",
    "initial_state",
    "advance",
    "next_phase",
    "run_to_completion",
    "Snapshot",
    "SnapshotRecorder",
    # Config
    "TSNEConfig",
    "ConfigurationError",
    "clamp_perplexity",
    "max_perplexity",
    # Math
    "squared_euclidean_distance",
    "euclidean_distance",
    "distance_matrix",
    "shannon_entropy",
    "entropy_to_perplexity",
    "SigmaSearchResult",
    "conditional_probabilities",
    "find_sigma",
    "compute_sigmas",
    "conditional_matrix",
    "joint_probabilities",
    "apply_exaggeration",
    "remove_exaggeration",
    "q_matrix",
    "kl_divergence",
    "kl_gradient",
    "momentum_at",
    "center_embedding",
    "update_embedding",
    # Datasets
    "make_3d_blobs",
    "make_3d_swiss_roll",
    "make_3d_helix",
    "make_3d_layers",
    "make_dataset",
    # Metrics
    "cluster_separation_ratio",
    "knn_recall",
    "trustworthiness",
    # Visualization
    "plot_embedding",
    "plot_matrix",
    "plot_cost_history",
    "plot_sigma_search",
    "plot_snapshot"
]
