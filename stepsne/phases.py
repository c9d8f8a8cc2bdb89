"""
Phase sequence of a t-SNE run as pure transitions over immutable states.

A run is a chain of TSNEState values. `advance` takes the state left by the
last completed phase and returns a new state for the next one; arrays held
by a state are read-only and never modified afterwards.

Phase order:

    INIT -> COMPUTE_DISTANCES -> COMPUTE_SIGMAS -> COMPUTE_P_CONDITIONAL
         -> SYMMETRIZE_P -> APPLY_EARLY_EXAGGERATION -> INITIALIZE_EMBEDDING
         -> (COMPUTE_Q, COMPUTE_GRADIENT, UPDATE_EMBEDDING)* -> COMPLETE

The loop body runs as a single transition tagged UPDATE_EMBEDDING.
REMOVE_EXAGGERATION is taken once, before the Q of the iteration equal to
`exaggeration_iter`.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from sklearn.utils import check_random_state

from .bandwidth import compute_sigmas
from .low_dim import q_matrix
from .math_utils import distance_matrix
from .optimizer import kl_divergence, kl_gradient, momentum_at, update_embedding
from .probabilities import (
    conditional_matrix,
    joint_probabilities,
    apply_exaggeration,
    remove_exaggeration
)

log = logging.getLogger(__name__)


class Phase(Enum):
    INIT = 'init'
    COMPUTE_DISTANCES = 'compute_distances'
    COMPUTE_SIGMAS = 'compute_sigmas'
    COMPUTE_P_CONDITIONAL = 'compute_p_conditional'
    SYMMETRIZE_P = 'symmetrize_p'
    APPLY_EARLY_EXAGGERATION = 'apply_early_exaggeration'
    INITIALIZE_EMBEDDING = 'initialize_embedding'
    COMPUTE_Q = 'compute_q'
    COMPUTE_GRADIENT = 'compute_gradient'
    UPDATE_EMBEDDING = 'update_embedding'
    REMOVE_EXAGGERATION = 'remove_exaggeration'
    COMPLETE = 'complete'


@dataclass(frozen=True, eq=False)
class TSNEState:
    """Everything a run knows after `phase` has completed."""

    phase: Phase
    iteration: int
    points: np.ndarray
    labels: np.ndarray
    distances: Optional[np.ndarray] = None
    sigmas: Optional[np.ndarray] = None
    sigma_results: Tuple = ()
    p_conditional: Optional[np.ndarray] = None
    p: Optional[np.ndarray] = None
    p_original: Optional[np.ndarray] = None
    exaggerated: bool = False
    embedding: Optional[np.ndarray] = None
    velocity: Optional[np.ndarray] = None
    # Q, gradient and P of the last optimization iteration
    q: Optional[np.ndarray] = None
    q_unnorm: Optional[np.ndarray] = None
    gradient: Optional[np.ndarray] = None
    p_used: Optional[np.ndarray] = None
    costs: Tuple[Tuple[int, float], ...] = ()
    final_q: Optional[np.ndarray] = None
    final_cost: Optional[float] = None

    @property
    def n_samples(self):
        return self.points.shape[0]

    @property
    def is_complete(self):
        return self.phase is Phase.COMPLETE


def _frozen(arr):
    arr = np.array(arr, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


def initial_state(X, labels):
    """State of a run that has been given its data and nothing else."""
    labels = np.array(labels, copy=True)
    labels.setflags(write=False)
    return TSNEState(phase=Phase.INIT, iteration=0, points=_frozen(X),
                     labels=labels)


def compute_distances(state, config):
    return replace(state, phase=Phase.COMPUTE_DISTANCES,
                   distances=_frozen(distance_matrix(state.points)))


def compute_sigma_phase(state, config):
    results = compute_sigmas(state.distances, config.perplexity,
                             max_iter=config.sigma_max_iter,
                             tol=config.sigma_tol,
                             n_traces=config.n_search_traces)
    sigmas = np.array([r.sigma for r in results])
    return replace(state, phase=Phase.COMPUTE_SIGMAS, sigmas=_frozen(sigmas),
                   sigma_results=tuple(results))


def compute_p_conditional(state, config):
    P_cond = conditional_matrix(state.distances, state.sigmas)
    return replace(state, phase=Phase.COMPUTE_P_CONDITIONAL,
                   p_conditional=_frozen(P_cond))


def symmetrize_p(state, config):
    P = _frozen(joint_probabilities(state.p_conditional))
    return replace(state, phase=Phase.SYMMETRIZE_P, p=P, p_original=P)


def apply_early_exaggeration(state, config):
    P = apply_exaggeration(state.p_original, config.early_exaggeration)
    return replace(state, phase=Phase.APPLY_EARLY_EXAGGERATION,
                   p=_frozen(P), exaggerated=True)


def initialize_embedding(state, config):
    rng = check_random_state(config.random_state)
    Y = rng.normal(0.0, config.init_scale,
                   size=(state.n_samples, config.n_components))
    return replace(state, phase=Phase.INITIALIZE_EMBEDDING, iteration=0,
                   embedding=_frozen(Y),
                   velocity=_frozen(np.zeros_like(Y)))


def optimize_step(state, config):
    """
    One full iteration: Q from the current embedding, the gradient against
    that Q, then the momentum update.
    """
    Q, Q_unnorm = q_matrix(state.embedding)
    grad = kl_gradient(state.p, Q, Q_unnorm, state.embedding)
    cost = kl_divergence(state.p, Q)

    momentum = momentum_at(state.iteration, config.initial_momentum,
                           config.final_momentum, config.momentum_switch_iter)
    Y, velocity = update_embedding(state.embedding, state.velocity, grad,
                                   config.learning_rate, momentum)

    return replace(state, phase=Phase.UPDATE_EMBEDDING,
                   iteration=state.iteration + 1,
                   embedding=_frozen(Y), velocity=_frozen(velocity),
                   q=_frozen(Q), q_unnorm=_frozen(Q_unnorm),
                   gradient=_frozen(grad), p_used=state.p,
                   costs=state.costs + ((state.iteration, cost),))


def remove_early_exaggeration(state, config):
    P = remove_exaggeration(state.p, original=state.p_original)
    log.debug("Removed early exaggeration at iteration %d", state.iteration)
    return replace(state, phase=Phase.REMOVE_EXAGGERATION, p=_frozen(P),
                   exaggerated=False)


def complete(state, config):
    Q, _ = q_matrix(state.embedding)
    final_cost = kl_divergence(state.p_original, Q)
    return replace(state, phase=Phase.COMPLETE, final_q=_frozen(Q),
                   final_cost=final_cost)


_SETUP_SEQUENCE = {
    Phase.INIT: Phase.COMPUTE_DISTANCES,
    Phase.COMPUTE_DISTANCES: Phase.COMPUTE_SIGMAS,
    Phase.COMPUTE_SIGMAS: Phase.COMPUTE_P_CONDITIONAL,
    Phase.COMPUTE_P_CONDITIONAL: Phase.SYMMETRIZE_P,
    Phase.SYMMETRIZE_P: Phase.APPLY_EARLY_EXAGGERATION,
    Phase.APPLY_EARLY_EXAGGERATION: Phase.INITIALIZE_EMBEDDING,
}

TRANSITIONS = {
    Phase.COMPUTE_DISTANCES: compute_distances,
    Phase.COMPUTE_SIGMAS: compute_sigma_phase,
    Phase.COMPUTE_P_CONDITIONAL: compute_p_conditional,
    Phase.SYMMETRIZE_P: symmetrize_p,
    Phase.APPLY_EARLY_EXAGGERATION: apply_early_exaggeration,
    Phase.INITIALIZE_EMBEDDING: initialize_embedding,
    Phase.UPDATE_EMBEDDING: optimize_step,
    Phase.REMOVE_EXAGGERATION: remove_early_exaggeration,
    Phase.COMPLETE: complete,
}


def next_phase(state, config):
    """Phase the next call to `advance` will complete."""
    if state.phase in _SETUP_SEQUENCE:
        return _SETUP_SEQUENCE[state.phase]
    if state.phase is Phase.COMPLETE:
        return Phase.COMPLETE
    if state.exaggerated and state.iteration >= config.exaggeration_iter \
            and state.iteration < config.max_iter:
        return Phase.REMOVE_EXAGGERATION
    if state.iteration >= config.max_iter:
        return Phase.COMPLETE
    return Phase.UPDATE_EMBEDDING


def advance(state, config):
    """
    Complete the next phase and return the resulting state.

    The input state is not modified. Advancing a complete state returns it
    unchanged.
    """
    if state.is_complete:
        return state
    phase = next_phase(state, config)
    new_state = TRANSITIONS[phase](state, config)
    if phase is not Phase.UPDATE_EMBEDDING:
        log.debug("Completed phase %s", phase.value)
    return new_state


def run_to_completion(state, config):
    """Advance until COMPLETE and return the final state."""
    while not state.is_complete:
        state = advance(state, config)
    return state
