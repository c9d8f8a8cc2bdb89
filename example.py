"""
Example: precompute a t-SNE run on 3D blobs and walk through its snapshots.
"""

import logging

import matplotlib.pyplot as plt

from stepsne import (
    Phase, StepwiseTSNE, precompute_tsne, make_dataset,
    cluster_separation_ratio, trustworthiness, plot_snapshot, plot_cost_history
)


def walk_through(points, labels, dataset_name):
    """Run t-SNE once, then print and plot each recorded phase."""
    print(f"\n{'='*60}")
    print(f"Dataset: {dataset_name}")
    print(f"Shape: {points.shape}")
    print('='*60)

    snapshots, model = precompute_tsne(points, labels, perplexity=15,
                                       max_iter=500, random_state=42)

    print(f"\n{'Step':<6} {'Phase':<26} {'Iteration':>10}")
    print("-" * 44)
    for snap in snapshots:
        print(f"{snap.step_id:<6} {snap.phase.value:<26} {snap.iteration:>10}")

    sigmas = snapshots.first(Phase.COMPUTE_SIGMAS)
    print(f"\nPerplexity used: {model.perplexity}")
    print(f"Mean sigma: {sigmas['mean_sigma']:.3f}, "
          f"all converged: {bool(sigmas['converged'].all())}")
    print(f"Final KL divergence: {model.kl_divergence_:.4f}")
    print(f"Separation ratio: {cluster_separation_ratio(model.embedding_, labels):.3f}")
    print(f"Trustworthiness: {trustworthiness(points, model.embedding_, k=5):.3f}")

    # One panel per setup phase plus a few milestones
    keyframes = [snapshots.first(p) for p in (
        Phase.INIT, Phase.COMPUTE_DISTANCES, Phase.COMPUTE_SIGMAS,
        Phase.SYMMETRIZE_P, Phase.COMPUTE_Q, Phase.COMPLETE)]
    keyframes += [snapshots.at_iteration(it) for it in (10, 100, 300)]

    fig = plt.figure(figsize=(15, 15))
    for k, snap in enumerate(keyframes):
        if snap.phase is Phase.INIT:
            ax = fig.add_subplot(3, 3, k + 1, projection='3d')
        else:
            ax = fig.add_subplot(3, 3, k + 1)
        plot_snapshot(snap, ax=ax)
    plt.suptitle(dataset_name)
    plt.tight_layout()
    plt.savefig(f"{dataset_name.lower().replace(' ', '_')}_steps.png", dpi=120)

    plot_cost_history(snapshots.first(Phase.COMPLETE),
                      exaggeration_iter=model.exaggeration_iter)
    plt.show()

    return model


def interactive_stepping(points, labels):
    """Drive a run one phase at a time, as a UI would."""
    model = StepwiseTSNE(perplexity=10, max_iter=300, random_state=0,
                         verbose=True).start(points, labels)
    while model.phase is not Phase.INITIALIZE_EMBEDDING:
        print(f"Completed: {model.step().value}")
    model.run_iterations(150)
    print(f"After 150 iterations, KL={model.cost_history_[-1][1]:.4f}")
    model.run()
    print(f"Done, {len(model.snapshots_)} snapshots")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    X, y = make_dataset('blobs', n_clusters=3, points_per_cluster=15, random_state=42)
    walk_through(X, y, "3D Blobs")

    X, y = make_dataset('swiss_roll', n_samples=60, random_state=42)
    walk_through(X, y, "Swiss Roll")

    X, y = make_dataset('helix', n_samples=45, random_state=42)
    interactive_stepping(X, y)

    print("\nDone! Check the saved PNG files for visualizations.")
