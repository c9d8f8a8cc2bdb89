"""
StepwiseTSNE: t-SNE that can be driven one phase at a time.

Runs the full optimization on a small dataset and records an immutable
snapshot at every conceptual phase (distances, bandwidth search,
probabilities, exaggeration, gradient descent, completion) so that a
caller can step through the algorithm after the fact.
"""

import logging

import numpy as np

from .config import TSNEConfig, ConfigurationError, clamp_perplexity, max_perplexity
from .optimizer import gradient_details, momentum_at
from .phases import Phase, initial_state, advance, next_phase
from .preprocessing import check_points, check_labels
from .snapshots import SnapshotRecorder

log = logging.getLogger(__name__)

_LOOP_PHASES = (Phase.INITIALIZE_EMBEDDING, Phase.UPDATE_EMBEDDING,
                Phase.REMOVE_EXAGGERATION)


class StepwiseTSNE:
    """
    Exact t-SNE with phase-by-phase execution and snapshot capture.

    Parameters
    ----------
    n_components : int, default=2
        Dimension of the embedding.
    perplexity : float, default=30.0
        Target effective number of neighbours. Must satisfy
        3 * perplexity <= n_samples - 1.
    learning_rate : float, default=200.0
        Gradient descent step size.
    max_iter : int, default=500
        Number of optimization iterations.
    early_exaggeration : float, default=4.0
        Factor applied to P before optimization starts.
    exaggeration_iter : int, default=100
        Iteration at which exaggeration is removed.
    initial_momentum : float, default=0.5
        Momentum before `momentum_switch_iter`.
    final_momentum : float, default=0.8
        Momentum from `momentum_switch_iter` on.
    momentum_switch_iter : int, default=250
        Iteration at which the momentum switches.
    init_scale : float, default=1e-4
        Standard deviation of the Gaussian initial embedding.
    sigma_max_iter : int, default=50
        Probes allowed per bandwidth search.
    sigma_tol : float, default=1e-5
        Entropy tolerance of the bandwidth search, in bits.
    capture_iterations : sequence of int or None, default=None
        Loop iterations captured as milestone snapshots. None uses the
        default milestone list.
    capture_every : int or None, default=None
        Also capture every `capture_every`-th iteration.
    n_search_traces : int, default=3
        Number of points whose bandwidth search trace is kept.
    random_state : int, RandomState or None, default=None
        Seed for the initial embedding, the only source of randomness.
    verbose : bool, default=False
        Whether to print optimization progress.
    """

    def __init__(
        self,
        n_components=2,
        perplexity=30.0,
        learning_rate=200.0,
        max_iter=500,
        early_exaggeration=4.0,
        exaggeration_iter=100,
        initial_momentum=0.5,
        final_momentum=0.8,
        momentum_switch_iter=250,
        init_scale=1e-4,
        sigma_max_iter=50,
        sigma_tol=1e-5,
        capture_iterations=None,
        capture_every=None,
        n_search_traces=3,
        random_state=None,
        verbose=False
    ):
        self.n_components = n_components
        self.perplexity = perplexity
        self.learning_rate = learning_rate
        self.max_iter = max_iter
        self.early_exaggeration = early_exaggeration
        self.exaggeration_iter = exaggeration_iter
        self.initial_momentum = initial_momentum
        self.final_momentum = final_momentum
        self.momentum_switch_iter = momentum_switch_iter
        self.init_scale = init_scale
        self.sigma_max_iter = sigma_max_iter
        self.sigma_tol = sigma_tol
        self.capture_iterations = capture_iterations
        self.capture_every = capture_every
        self.n_search_traces = n_search_traces
        self.random_state = random_state
        self.verbose = verbose

        self.config_ = None
        self.state_ = None
        self.snapshots_ = None
        self.embedding_ = None
        self.kl_divergence_ = None
        self.cost_history_ = []
        self.sigmas_ = None

    # Driving the run

    def start(self, X, labels=None):
        """
        Validate the input and begin a fresh run at the INIT phase.

        Any previous run and its snapshots are discarded.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input points.
        labels : array-like of shape (n_samples,) or None
            Integer tags carried into snapshots; they do not affect the run.

        Returns
        -------
        self

        Raises
        ------
        ConfigurationError
            If the parameters or input cannot produce a meaningful run.
        """
        X = check_points(X)
        labels = check_labels(labels, X.shape[0])
        self.config_ = TSNEConfig.from_estimator(self).validate(X.shape[0])

        self.snapshots_ = SnapshotRecorder(self.config_.capture_iterations,
                                           self.config_.capture_every)
        self.state_ = initial_state(X, labels)
        self.embedding_ = None
        self.kl_divergence_ = None
        self.cost_history_ = []
        self.sigmas_ = None

        log.info("Starting t-SNE on %d points, %dD -> %dD",
                 X.shape[0], X.shape[1], self.config_.n_components)
        self._record(None, self.state_)
        return self

    def step(self):
        """
        Complete the next phase and record its snapshots.

        One call runs a single setup phase, the removal of exaggeration, or a
        whole optimization iteration (Q, gradient and update together).

        Returns
        -------
        phase : Phase
            The phase just completed.
        """
        if self.state_ is None:
            raise ValueError("Call start() or fit() before stepping the run")
        if self.state_.is_complete:
            return self.state_.phase

        prev = self.state_
        self.state_ = advance(prev, self.config_)
        self._record(prev, self.state_)
        self._sync()
        return self.state_.phase

    def run_iterations(self, n_iter):
        """
        Finish any setup phases, then run up to `n_iter` optimization
        iterations.

        Returns
        -------
        phase : Phase
        """
        if self.state_ is None:
            raise ValueError("Call start() or fit() before stepping the run")
        while self.state_.phase not in _LOOP_PHASES and not self.is_complete:
            self.step()

        for _ in range(n_iter):
            if self.is_complete:
                break
            if self.step() is Phase.REMOVE_EXAGGERATION:
                self.step()
            if next_phase(self.state_, self.config_) is Phase.COMPLETE:
                self.step()
        return self.state_.phase

    def run(self):
        """Run to completion and return self."""
        if self.state_ is None:
            raise ValueError("Call start() or fit() before running")
        while not self.is_complete:
            self.step()
        log.info("t-SNE completed, %d snapshots captured", len(self.snapshots_))
        return self

    def fit(self, X, labels=None):
        """
        Run the whole algorithm on X.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input points.
        labels : array-like of shape (n_samples,) or None
            Point labels for the snapshots.

        Returns
        -------
        self
        """
        self.start(X, labels)
        return self.run()

    def fit_transform(self, X, labels=None):
        """
        Run the whole algorithm and return the embedding.

        Returns
        -------
        Y : ndarray of shape (n_samples, n_components)
        """
        self.fit(X, labels)
        return self.embedding_

    # Inspection

    @property
    def phase(self):
        return None if self.state_ is None else self.state_.phase

    @property
    def is_complete(self):
        return self.state_ is not None and self.state_.is_complete

    def point_gradient_details(self, i):
        """
        Gradient and force breakdown of point `i` for the last optimization
        iteration, taken against the P and Q that produced that gradient.
        Returns None before the first gradient exists.
        """
        state = self.state_
        if state is None or state.gradient is None:
            return None
        return gradient_details(state.p_used, state.q, state.gradient, i)

    def _sync(self):
        state = self.state_
        if state.sigmas is not None:
            self.sigmas_ = np.array(state.sigmas)
        if state.embedding is not None:
            self.embedding_ = np.array(state.embedding)
        self.cost_history_ = list(state.costs)
        if state.final_cost is not None:
            self.kl_divergence_ = state.final_cost
        elif state.costs:
            self.kl_divergence_ = state.costs[-1][1]

    # Snapshot capture

    def _record(self, prev, state):
        rec = self.snapshots_
        config = self.config_
        labels = state.labels
        phase = state.phase

        if phase is Phase.INIT:
            rec.record(phase, 0, labels,
                       points=state.points,
                       n_samples=state.n_samples,
                       input_dim=state.points.shape[1],
                       n_components=config.n_components,
                       perplexity=config.perplexity)

        elif phase is Phase.COMPUTE_DISTANCES:
            D = state.distances
            upper = D[np.triu_indices_from(D, k=1)]
            rec.record(phase, 0, labels,
                       distance_matrix=D,
                       min_distance=float(upper.min()),
                       max_distance=float(upper.max()),
                       mean_distance=float(upper.mean()))

        elif phase is Phase.COMPUTE_SIGMAS:
            results = state.sigma_results
            traces = [
                {'point_index': i,
                 'history': [(s.iteration, s.sigma, s.perplexity) for s in r.history]}
                for i, r in enumerate(results[:config.n_search_traces])
            ]
            rec.record(phase, 0, labels,
                       sigmas=state.sigmas,
                       perplexities=np.array([r.perplexity for r in results]),
                       converged=np.array([r.converged for r in results]),
                       target_perplexity=config.perplexity,
                       mean_sigma=float(np.mean(state.sigmas)),
                       search_history=traces)

        elif phase is Phase.COMPUTE_P_CONDITIONAL:
            rec.record(phase, 0, labels,
                       p_conditional=state.p_conditional,
                       example_row={'point_index': 0,
                                    'probabilities': state.p_conditional[0],
                                    'sigma': float(state.sigmas[0])})

        elif phase is Phase.SYMMETRIZE_P:
            rec.record(phase, 0, labels,
                       P=state.p,
                       p_conditional=state.p_conditional)

        elif phase is Phase.APPLY_EARLY_EXAGGERATION:
            rec.record(phase, 0, labels,
                       P_exaggerated=state.p,
                       P_original=state.p_original,
                       exaggeration_factor=config.early_exaggeration)

        elif phase is Phase.INITIALIZE_EMBEDDING:
            rec.record(phase, 0, labels,
                       embedding=state.embedding,
                       n_components=config.n_components)

        elif phase is Phase.UPDATE_EMBEDDING:
            self._record_iteration(prev, state)

        elif phase is Phase.REMOVE_EXAGGERATION:
            rec.record(phase, state.iteration, labels,
                       P=state.p,
                       P_exaggerated=prev.p,
                       embedding=state.embedding)

        elif phase is Phase.COMPLETE:
            rec.record(phase, state.iteration, labels,
                       embedding=state.embedding,
                       final_cost=state.final_cost,
                       Q=state.final_q,
                       costs=np.array(state.costs).reshape(-1, 2))

    def _record_iteration(self, prev, state):
        rec = self.snapshots_
        config = self.config_
        t = prev.iteration
        cost = state.costs[-1][1]
        momentum = momentum_at(t, config.initial_momentum, config.final_momentum,
                               config.momentum_switch_iter)
        milestone = rec.should_capture(t, config.max_iter)

        if t == 0:
            # The first iteration is shown phase by phase
            rec.record(Phase.COMPUTE_Q, t, state.labels,
                       Q=state.q,
                       embedding=prev.embedding)
            rec.record(Phase.COMPUTE_GRADIENT, t, state.labels,
                       gradient=state.gradient,
                       P=state.p_used,
                       Q=state.q,
                       embedding=prev.embedding)
            rec.record(Phase.UPDATE_EMBEDDING, t, state.labels,
                       embedding=state.embedding,
                       gradient=state.gradient,
                       velocity=state.velocity,
                       Q=state.q,
                       learning_rate=config.learning_rate,
                       momentum=momentum,
                       cost=cost,
                       milestone=milestone)
        elif milestone:
            rec.record(Phase.UPDATE_EMBEDDING, t, state.labels,
                       embedding=state.embedding,
                       gradient=state.gradient,
                       Q=state.q,
                       momentum=momentum,
                       cost=cost,
                       milestone=True)

        if self.verbose and t % 100 == 0:
            print(f"Iter {t}: KL={cost:.4f}, momentum={momentum:.2f}, "
                  f"exaggerated={state.exaggerated}")


def precompute_tsne(points, labels=None, **params):
    """
    Run t-SNE on a dataset and return its snapshot timeline.

    The perplexity (default 15) is clamped to floor((n_samples - 1) / 3)
    before the run.

    Raises
    ------
    ConfigurationError
        If the dataset has fewer than 4 points, too few for any perplexity
        of at least 1.

    Parameters
    ----------
    points : array-like of shape (n_samples, n_features)
        Input points.
    labels : array-like of shape (n_samples,) or None
        Point labels.
    **params
        Passed to StepwiseTSNE.

    Returns
    -------
    snapshots : SnapshotRecorder
    model : StepwiseTSNE
    """
    n_samples = len(points)
    if max_perplexity(n_samples) < 1:
        raise ConfigurationError(
            f"At least 4 points are required to run t-SNE, got {n_samples}")
    params['perplexity'] = clamp_perplexity(params.get('perplexity', 15), n_samples)
    model = StepwiseTSNE(**params).fit(points, labels)
    return model.snapshots_, model
