"""
Snapshot recording for replaying a run phase by phase.

A snapshot owns deep copies of everything it holds. The recorder only reads
engine state and the engine never reads snapshots back.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

import numpy as np

from .config import DEFAULT_CAPTURE_ITERATIONS
from .phases import Phase


def _owned_copy(value):
    """Deep, read-only copy of a snapshot value."""
    if isinstance(value, np.ndarray):
        arr = np.array(value, copy=True)
        arr.setflags(write=False)
        return arr
    if isinstance(value, dict):
        return MappingProxyType({k: _owned_copy(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_owned_copy(v) for v in value)
    return value


@dataclass(frozen=True, eq=False)
class Snapshot:
    """
    Immutable capture of a run at a phase boundary.

    Attributes
    ----------
    step_id : int
        Position of the snapshot in the timeline.
    phase : Phase
        Phase that had just completed.
    iteration : int
        Optimization iteration the snapshot refers to.
    data : Mapping
        Read-only copies of the matrices, vectors and scalars relevant to
        the phase.
    labels : ndarray
        Point labels, carried through for rendering.
    """

    step_id: int
    phase: Phase
    iteration: int
    data: Mapping[str, Any]
    labels: np.ndarray

    def __getitem__(self, key):
        return self.data[key]

    def __contains__(self, key):
        return key in self.data


class SnapshotRecorder:
    """
    Ordered collection of snapshots with a capture policy for the
    optimization loop.

    Parameters
    ----------
    capture_iterations : sequence of int or None, default=None
        Iterations at which to capture a milestone snapshot. None uses
        0, 5, 10, 25, 50, 75, 100, 150, 200, 300, 400. The last iteration
        of a run is always captured.
    capture_every : int or None, default=None
        Additionally capture every `capture_every`-th iteration.
    """

    def __init__(self, capture_iterations=None, capture_every=None):
        if capture_iterations is None:
            capture_iterations = DEFAULT_CAPTURE_ITERATIONS
        self.capture_iterations = frozenset(capture_iterations)
        self.capture_every = capture_every
        self._snapshots = []

    def should_capture(self, iteration, max_iter):
        """Whether the loop iteration `iteration` is a milestone."""
        if iteration == max_iter - 1 or iteration in self.capture_iterations:
            return True
        return self.capture_every is not None and iteration % self.capture_every == 0

    def record(self, phase, iteration, labels, **data):
        """Deep-copy `data` into a new snapshot and append it."""
        snapshot = Snapshot(
            step_id=len(self._snapshots),
            phase=phase,
            iteration=iteration,
            data=_owned_copy(data),
            labels=_owned_copy(np.asarray(labels)),
        )
        self._snapshots.append(snapshot)
        return snapshot

    def clear(self):
        self._snapshots = []

    def by_phase(self, phase):
        """All snapshots tagged with `phase`, in timeline order."""
        return [s for s in self._snapshots if s.phase is phase]

    def first(self, phase) -> Optional[Snapshot]:
        for s in self._snapshots:
            if s.phase is phase:
                return s
        return None

    def at_iteration(self, iteration):
        """Latest snapshot holding an embedding at `iteration`, or None."""
        matches = [s for s in self._snapshots
                   if s.iteration == iteration and 'embedding' in s.data]
        return matches[-1] if matches else None

    def milestones(self):
        """Loop snapshots captured by the milestone policy."""
        return [s for s in self._snapshots
                if s.phase is Phase.UPDATE_EMBEDDING and s.data.get('milestone')]

    def __len__(self):
        return len(self._snapshots)

    def __iter__(self):
        return iter(self._snapshots)

    def __getitem__(self, index):
        return self._snapshots[index]
