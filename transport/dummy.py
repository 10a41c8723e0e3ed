"""Synthetic transport used for demos and restart testing."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from core.sim_state import SimulationState
from transport.base import BatchResult, Transport


@dataclass
class DummyTransport(Transport):
    """Draws batch estimators around a fixed multiplication factor.

    The k estimate spreads as ``k_sigma / sqrt(n_particles / 1000)`` so larger
    batches look converged sooner.
    """

    k_true: float = 1.0
    k_sigma: float = 0.02
    leakage: float = 0.03

    def run_batch(self, batch: int, state: SimulationState, rng: np.random.Generator) -> BatchResult:
        scale = self.k_sigma / np.sqrt(max(state.config.n_particles, 1) / 1000.0)
        k_analog = float(rng.normal(self.k_true, scale))
        k_collision = float(rng.normal(self.k_true, scale))
        k_tracklength = float(rng.normal(self.k_true, scale))
        leak = float(rng.normal(self.leakage, self.leakage * 0.1))

        entropy = float(rng.uniform(6.0, 7.0)) if state.entropy_on else None
        tally_scores = tuple(rng.random(tally.shape) for tally in state.tallies)
        return BatchResult(
            k_effective=(k_analog + k_collision + k_tracklength) / 3.0,
            entropy=entropy,
            global_scores=(k_analog, k_collision, k_tracklength, leak),
            tally_scores=tally_scores,
        )
