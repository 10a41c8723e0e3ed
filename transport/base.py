"""Transport contract: one call per batch producing batch estimators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from core.sim_state import SimulationState


@dataclass(frozen=True)
class BatchResult:
    """Estimators produced by transporting one batch of particles.

    Attributes:
        k_effective: Batch k-effective (ignored in fixed-source runs).
        entropy: Shannon entropy of the fission source, when tracked.
        global_scores: One value per global tally cell.
        tally_scores: One (filter bins x score bins) array per user tally.
    """

    k_effective: float = 0.0
    entropy: float | None = None
    global_scores: Sequence[float] = ()
    tally_scores: Sequence[NDArray[np.float64]] = field(default_factory=tuple)


class Transport(ABC):
    """Abstract source of per-batch estimators.

    Implementations must be deterministic given the generator they receive,
    since a resumed run only knows the seed.
    """

    @abstractmethod
    def run_batch(self, batch: int, state: SimulationState, rng: np.random.Generator) -> BatchResult:
        """Transport all particles of ``batch`` and return its estimators.

        Invariants:
            - Must not mutate ``state``; the simulator folds the result in.
            - ``tally_scores`` shapes must match ``state.tallies``.
        """
