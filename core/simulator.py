"""Batch loop that writes state points and resumes from them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import numpy as np

from core.analytics import RunningKeffEstimate
from core.replay import BatchHistoryReplayer, accumulate_realization, log_batch_keff
from core.sim_state import ProcessRole, SimulationState
from data.state_point_codec import StatePoint
from data.state_point_store import create_state_point, load_state_point
from transport.base import BatchResult, Transport

LOGGER = logging.getLogger(__name__)


class SimulatorRuntimeError(RuntimeError):
    """Raised when the transport fails while running a batch."""


class Simulator:
    """Drive batches through a transport and checkpoint at chosen batches.

    The simulator owns nothing global: every counter and accumulator lives on
    the ``SimulationState`` it was given.
    """

    def __init__(
        self,
        state: SimulationState,
        transport: Transport,
        state_point_batches: Iterable[int] = (),
        output_dir: str | Path = ".",
        role: ProcessRole = ProcessRole.MASTER,
    ) -> None:
        self.state = state
        self.transport = transport
        self.state_point_batches = frozenset(int(batch) for batch in state_point_batches)
        self.output_dir = Path(output_dir)
        self.role = ProcessRole(role)
        self.replayer = BatchHistoryReplayer()
        self.written: list[Path] = []

    def restart(self, path: str | Path) -> StatePoint:
        """Load ``path`` and replay its history up to the restart batch."""
        point = load_state_point(path, self.state, role=self.role)
        self.replayer.replay_all(self.state)
        return point

    def run(self, until_batch: int | None = None) -> RunningKeffEstimate:
        """Run batches after the current one through ``until_batch``.

        ``until_batch`` defaults to the configured batch count; stopping
        earlier leaves the state ready for another ``run`` call.
        """
        last = self.state.config.n_batches if until_batch is None else int(until_batch)
        for batch in range(self.state.current_batch + 1, last + 1):
            self.run_batch(batch)

        if self.state.is_criticality and self.state.keff.n_realizations > 0:
            LOGGER.info(
                "k-effective after %d active batches: %.5f +/- %.5f",
                self.state.keff.n_realizations,
                self.state.keff.mean,
                self.state.keff.std,
            )
        return self.state.keff

    def run_batch(self, batch: int) -> BatchResult:
        """Transport one batch and fold its estimators into the state."""
        state = self.state
        state.current_batch = batch
        try:
            result = self.transport.run_batch(batch, state, state.rng.stream(batch))
        except Exception as exc:
            raise SimulatorRuntimeError(f"Transport failed in batch {batch}: {exc}") from exc

        if state.is_criticality:
            state.k_batch[batch - 1] = result.k_effective
            if state.entropy_on:
                if result.entropy is None:
                    raise SimulatorRuntimeError(f"Entropy tracking is on but batch {batch} reported none.")
                state.entropy[batch - 1] = result.entropy

        if state.tallies_on:
            self._accumulate_tallies(result)

        accumulate_realization(state, result.k_effective)
        log_batch_keff(state)

        if batch == state.config.n_inactive:
            state.tallies_on = True

        if batch in self.state_point_batches and self.role is ProcessRole.MASTER:
            self.written.append(create_state_point(batch, state, self.output_dir))
        return result

    def _accumulate_tallies(self, result: BatchResult) -> None:
        state = self.state
        if len(result.global_scores) > 0:
            state.global_tallies.accumulate(result.global_scores)
        if len(result.tally_scores) != state.n_tallies:
            raise SimulatorRuntimeError(
                f"Transport returned {len(result.tally_scores)} tally score arrays for {state.n_tallies} tallies."
            )
        for tally, scores in zip(state.tallies, result.tally_scores):
            tally.accumulate(np.asarray(scores, dtype=np.float64))
