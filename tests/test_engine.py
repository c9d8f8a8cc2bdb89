"""
Tests for the phase state machine, the snapshot recorder and StepwiseTSNE.
"""

from collections.abc import Mapping

import matplotlib.pyplot as plt
import numpy as np
import pytest

from stepsne import StepwiseTSNE, precompute_tsne, ConfigurationError
from stepsne.config import TSNEConfig
from stepsne.datasets import make_3d_blobs
from stepsne.low_dim import q_matrix
from stepsne.metrics import cluster_separation_ratio
from stepsne.optimizer import kl_gradient
from stepsne.phases import Phase, initial_state, advance, next_phase, run_to_completion
from stepsne.snapshots import SnapshotRecorder
from stepsne.visualization import plot_snapshot, plot_cost_history

SETUP_PHASES = [
    Phase.COMPUTE_DISTANCES,
    Phase.COMPUTE_SIGMAS,
    Phase.COMPUTE_P_CONDITIONAL,
    Phase.SYMMETRIZE_P,
    Phase.APPLY_EARLY_EXAGGERATION,
    Phase.INITIALIZE_EMBEDDING,
]


@pytest.fixture
def blobs():
    return make_3d_blobs(n_clusters=3, points_per_cluster=10, random_state=0)


def _small_model(**kwargs):
    params = dict(perplexity=5.0, max_iter=30, exaggeration_iter=10,
                  momentum_switch_iter=20, random_state=42)
    params.update(kwargs)
    return StepwiseTSNE(**params)


def _assert_same(a, b):
    if isinstance(a, np.ndarray):
        assert np.array_equal(a, b)
    elif isinstance(a, Mapping):
        assert set(a) == set(b)
        for key in a:
            _assert_same(a[key], b[key])
    elif isinstance(a, tuple):
        assert len(a) == len(b)
        for x, y in zip(a, b):
            _assert_same(x, y)
    else:
        assert a == b


class TestPhases:
    """Tests for the pure phase transitions."""

    def test_setup_sequence(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=5, random_state=0)
        state = initial_state(X, y)
        assert state.phase is Phase.INIT

        for expected in SETUP_PHASES:
            state = advance(state, config)
            assert state.phase is expected
        assert next_phase(state, config) is Phase.UPDATE_EMBEDDING

    def test_advance_does_not_touch_input_state(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=5, random_state=0)
        state = initial_state(X, y)
        for _ in SETUP_PHASES:
            state = advance(state, config)

        embedding = state.embedding.copy()
        new_state = advance(state, config)

        assert new_state is not state
        assert state.iteration == 0
        assert np.array_equal(state.embedding, embedding)
        assert not state.embedding.flags.writeable
        with pytest.raises(ValueError):
            state.embedding[0, 0] = 1.0

    def test_loop_body_uses_fresh_q(self, blobs):
        """The gradient of an iteration is taken against that iteration's Q."""
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=5, random_state=0)
        state = initial_state(X, y)
        for _ in SETUP_PHASES:
            state = advance(state, config)
        state = advance(state, config)

        prev = state
        state = advance(prev, config)
        Q, Q_unnorm = q_matrix(prev.embedding)

        assert np.allclose(state.q, Q)
        assert np.allclose(state.gradient, kl_gradient(prev.p, Q, Q_unnorm, prev.embedding))
        assert state.costs[-1][0] == prev.iteration

    def test_exaggeration_removed_once(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=12, exaggeration_iter=4,
                            random_state=0)
        state = initial_state(X, y)
        removals = []
        while not state.is_complete:
            state = advance(state, config)
            if state.phase is Phase.REMOVE_EXAGGERATION:
                removals.append(state.iteration)
                assert np.array_equal(state.p, state.p_original)

        assert removals == [4]
        assert state.iteration == 12
        assert [it for it, _ in state.costs] == list(range(12))

    def test_exaggeration_at_iteration_zero(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=3, exaggeration_iter=0,
                            random_state=0)
        state = initial_state(X, y)
        for _ in SETUP_PHASES:
            state = advance(state, config)
        assert next_phase(state, config) is Phase.REMOVE_EXAGGERATION

    def test_exaggeration_never_removed_past_max_iter(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=5, exaggeration_iter=50,
                            random_state=0)
        state = run_to_completion(initial_state(X, y), config)
        assert state.is_complete
        assert state.exaggerated
        assert state.final_cost >= 0

    def test_complete_is_terminal(self, blobs):
        X, y = blobs
        config = TSNEConfig(perplexity=5.0, max_iter=2, random_state=0)
        state = run_to_completion(initial_state(X, y), config)
        assert advance(state, config) is state


class TestSnapshotRecorder:
    """Tests for snapshot ownership and capture policy."""

    def test_record_copies(self):
        rec = SnapshotRecorder()
        live = np.zeros((3, 2))
        snap = rec.record(Phase.INITIALIZE_EMBEDDING, 0, [0, 1, 1], embedding=live)

        live[0, 0] = 5.0
        assert snap['embedding'][0, 0] == 0.0
        assert not np.shares_memory(live, snap['embedding'])
        with pytest.raises(ValueError):
            snap['embedding'][0, 0] = 1.0
        with pytest.raises(TypeError):
            snap.data['embedding'] = live

    def test_default_policy(self):
        rec = SnapshotRecorder()
        captured = [t for t in range(500) if rec.should_capture(t, 500)]
        assert captured == [0, 5, 10, 25, 50, 75, 100, 150, 200, 300, 400, 499]

    def test_every_n_policy(self):
        rec = SnapshotRecorder(capture_iterations=(), capture_every=20)
        captured = [t for t in range(60) if rec.should_capture(t, 60)]
        assert captured == [0, 20, 40, 59]

    def test_step_ids_and_clear(self):
        rec = SnapshotRecorder()
        rec.record(Phase.INIT, 0, [0])
        rec.record(Phase.COMPUTE_DISTANCES, 0, [0])
        assert [s.step_id for s in rec] == [0, 1]
        assert rec.first(Phase.COMPUTE_DISTANCES) is rec[1]

        rec.clear()
        assert len(rec) == 0


class TestStepwiseTSNE:
    """Tests for the orchestrating estimator."""

    def test_step_through_phases(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)
        assert model.phase is Phase.INIT

        for expected in SETUP_PHASES:
            assert model.step() is expected
        assert model.step() is Phase.UPDATE_EMBEDDING
        assert model.state_.iteration == 1

    def test_step_before_start(self):
        with pytest.raises(ValueError):
            StepwiseTSNE().step()

    def test_snapshot_timeline(self, blobs):
        X, y = blobs
        snapshots, model = precompute_tsne(X, y, perplexity=5.0, max_iter=60,
                                           exaggeration_iter=20, random_state=0)
        phases = [s.phase for s in snapshots]

        assert phases[:10] == [Phase.INIT] + SETUP_PHASES + [
            Phase.COMPUTE_Q, Phase.COMPUTE_GRADIENT, Phase.UPDATE_EMBEDDING]
        assert phases[-1] is Phase.COMPLETE
        assert phases.count(Phase.REMOVE_EXAGGERATION) == 1
        assert [s.step_id for s in snapshots] == list(range(len(snapshots)))
        assert [s.iteration for s in snapshots.milestones()] == [0, 5, 10, 25, 50, 59]

        sigmas = snapshots.first(Phase.COMPUTE_SIGMAS)
        assert np.all(sigmas['converged'])
        assert len(sigmas['search_history']) == 3
        assert sigmas['sigmas'].shape == (30,)

        final = snapshots.first(Phase.COMPLETE)
        assert np.array_equal(final.labels, y)
        assert final['costs'].shape == (60, 2)
        assert final['final_cost'] == model.kl_divergence_

    def test_snapshots_independent_of_live_state(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)
        for _ in range(8):
            model.step()

        snap = model.snapshots_.first(Phase.INITIALIZE_EMBEDDING)
        before = snap['embedding'].copy()
        model.run()

        assert np.array_equal(snap['embedding'], before)
        assert not np.shares_memory(snap['embedding'], model.state_.embedding)
        assert not np.array_equal(snap['embedding'], model.embedding_)

    def test_centering_invariant(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)
        while not model.is_complete:
            model.step()
            if model.phase in (Phase.UPDATE_EMBEDDING, Phase.REMOVE_EXAGGERATION,
                               Phase.COMPLETE):
                assert np.allclose(model.state_.embedding.mean(axis=0), 0.0, atol=1e-10)

    def test_remove_exaggeration_snapshot(self, blobs):
        X, y = blobs
        model = _small_model().fit(X, y)
        snaps = model.snapshots_.by_phase(Phase.REMOVE_EXAGGERATION)

        assert len(snaps) == 1
        assert snaps[0].iteration == 10
        original = model.snapshots_.first(Phase.SYMMETRIZE_P)['P']
        assert np.array_equal(snaps[0]['P'], original)
        assert np.allclose(snaps[0]['P_exaggerated'], 4.0 * original)

    def test_run_iterations(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)

        assert model.run_iterations(12) is Phase.UPDATE_EMBEDDING
        assert model.state_.iteration == 12
        assert not model.state_.exaggerated
        assert len(model.cost_history_) == 12

        model.run_iterations(100)
        assert model.is_complete
        assert model.state_.iteration == 30

    def test_fit_transform(self, blobs):
        X, y = blobs
        model = _small_model()
        Y = model.fit_transform(X, y)

        assert Y.shape == (30, 2)
        assert np.all(np.isfinite(Y))
        assert model.is_complete
        assert len(model.cost_history_) == 30
        assert model.sigmas_.shape == (30,)

    def test_one_dimensional_embedding(self, blobs):
        X, y = blobs
        Y = _small_model(n_components=1).fit_transform(X, y)
        assert Y.shape == (30, 1)

    def test_labels_optional(self, blobs):
        X, _ = blobs
        model = _small_model(max_iter=3).fit(X)
        assert np.all(model.snapshots_[0].labels == 0)

    def test_rerun_discards_snapshots(self, blobs):
        X, y = blobs
        model = _small_model(max_iter=5).fit(X, y)
        n_snapshots = len(model.snapshots_)

        model.fit(X, y)
        assert len(model.snapshots_) == n_snapshots

        model.start(X, y)
        assert len(model.snapshots_) == 1
        assert model.embedding_ is None

    def test_invalid_configuration_fails_fast(self, blobs):
        X, y = blobs
        with pytest.raises(ConfigurationError):
            StepwiseTSNE(perplexity=10.0).fit(X, y)
        with pytest.raises(ConfigurationError):
            StepwiseTSNE(perplexity=1.0).fit(X[:1], y[:1])
        with pytest.raises(ConfigurationError):
            StepwiseTSNE(perplexity=5.0).fit(X, y[:10])
        with pytest.raises(ConfigurationError, match="at least 1"):
            StepwiseTSNE(perplexity=0.5).fit(X, y)

    def test_precompute_rejects_tiny_dataset(self, blobs):
        X, y = blobs
        with pytest.raises(ConfigurationError, match="At least 4 points"):
            precompute_tsne(X[:3], y[:3])

    def test_point_gradient_details(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)
        assert model.point_gradient_details(0) is None

        model.run_iterations(3)
        details = model.point_gradient_details(0)
        assert np.isclose(details['magnitude'], np.linalg.norm(model.state_.gradient[0]))
        assert len(details['attractive_forces']) + len(details['repulsive_forces']) == 29

    def test_gradient_details_survive_exaggeration_removal(self, blobs):
        """Force breakdown keeps the P that produced the gradient it sits beside."""
        X, y = blobs
        model = _small_model(exaggeration_iter=10).start(X, y)
        model.run_iterations(10)
        assert next_phase(model.state_, model.config_) is Phase.REMOVE_EXAGGERATION
        before = model.point_gradient_details(0)

        assert model.step() is Phase.REMOVE_EXAGGERATION
        after = model.point_gradient_details(0)
        state = model.state_

        assert np.array_equal(before["gradient"], after["gradient"])
        assert before["attractive_forces"] == after["attractive_forces"]
        assert before["repulsive_forces"] == after["repulsive_forces"]
        assert np.allclose(state.p_used, 4.0 * state.p)
        for entry in after["attractive_forces"] + after["repulsive_forces"]:
            assert entry["p"] == state.p_used[0, entry["j"]]

    def test_gradient_details_survive_completion(self, blobs):
        X, y = blobs
        model = _small_model().start(X, y)
        while next_phase(model.state_, model.config_) is not Phase.COMPLETE:
            model.step()
        before = model.point_gradient_details(0)
        q_last = model.state_.q

        assert model.step() is Phase.COMPLETE
        after = model.point_gradient_details(0)

        assert model.state_.q is q_last
        assert model.state_.final_q is not None
        assert before["attractive_forces"] == after["attractive_forces"]
        assert before["repulsive_forces"] == after["repulsive_forces"]
        assert "Q" in model.snapshots_.first(Phase.COMPLETE)

    def test_determinism(self, blobs):
        """Same seed and configuration give identical snapshot sequences."""
        X, y = blobs
        a = _small_model(random_state=7).fit(X, y).snapshots_
        b = _small_model(random_state=7).fit(X, y).snapshots_

        assert len(a) == len(b)
        for s1, s2 in zip(a, b):
            assert s1.phase is s2.phase
            assert s1.iteration == s2.iteration
            _assert_same(s1.data, s2.data)

    def test_different_seeds_differ(self, blobs):
        X, y = blobs
        Y1 = _small_model(random_state=1).fit_transform(X, y)
        Y2 = _small_model(random_state=2).fit_transform(X, y)
        assert not np.allclose(Y1, Y2)

    def test_cluster_separation_preserved(self):
        """Well separated 3D clusters stay separated in the embedding."""
        X, y = make_3d_blobs(n_clusters=3, points_per_cluster=10,
                             cluster_spread=0.5, cluster_separation=10.0,
                             random_state=3)
        snapshots, model = precompute_tsne(X, y, perplexity=10, learning_rate=200,
                                           max_iter=500, n_components=2,
                                           random_state=0)

        assert model.perplexity == 9
        Y = model.embedding_
        assert np.all(np.isfinite(Y))
        assert cluster_separation_ratio(Y, y) < 0.5
        assert model.kl_divergence_ >= 0


class TestVisualization:
    """Smoke tests for snapshot rendering."""

    def test_plot_every_snapshot(self, blobs):
        X, y = blobs
        snapshots, _ = precompute_tsne(X, y, perplexity=5.0, max_iter=20,
                                       random_state=0)
        for snap in snapshots:
            assert plot_snapshot(snap) is not None
            plt.close('all')

        ax = plot_cost_history(snapshots.first(Phase.COMPLETE), exaggeration_iter=100)
        assert len(ax.lines) == 2
        plt.close('all')


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
