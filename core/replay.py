"""Batch history replay after loading a state point."""

from __future__ import annotations

import logging

from core.sim_state import SimulationState

LOGGER = logging.getLogger(__name__)


def log_batch_keff(state: SimulationState) -> None:
    """Log the progress line for ``state.current_batch``.

    Fixed-source runs carry no k-effective history, so their line only names
    the batch and the realization count.
    """
    batch = state.current_batch
    n_batches = state.config.n_batches
    if not state.is_criticality:
        LOGGER.info("batch %4d/%d  realizations=%d", batch, n_batches, state.n_realizations)
        return

    k = float(state.k_batch[batch - 1])
    if batch > state.config.n_inactive and state.keff.n_realizations > 0:
        LOGGER.info(
            "batch %4d/%d  k=%.5f  mean=%.5f +/- %.5f",
            batch,
            n_batches,
            k,
            state.keff.mean,
            state.keff.std,
        )
    else:
        LOGGER.info("batch %4d/%d  k=%.5f", batch, n_batches, k)


def accumulate_realization(state: SimulationState, k: float) -> None:
    """Count ``state.current_batch`` as a realization if it is active.

    Every run mode counts realizations; only criticality runs fold ``k``
    into the running k-effective estimate.
    """
    if state.current_batch <= state.config.n_inactive:
        return
    state.n_realizations += 1
    if state.is_criticality:
        state.keff.add(k)


class BatchHistoryReplayer:
    """Rebuild the running k-effective estimate from a loaded history.

    Call ``replay_batch_history`` once per batch with ``state.current_batch``
    running from 1 to ``state.restart_batch``. Afterwards the state holds the
    same realization count, mean and standard deviation an uninterrupted run
    would hold at the restart batch.
    """

    def replay_batch_history(self, state: SimulationState) -> None:
        batch = state.current_batch

        if batch == 1:
            LOGGER.info("Replaying history from state point...")

        if batch == state.config.n_inactive:
            state.tallies_on = True

        accumulate_realization(state, state.k_batch[batch - 1])
        log_batch_keff(state)

        if batch == state.restart_batch:
            LOGGER.info("Resuming simulation...")

    def replay_all(self, state: SimulationState) -> None:
        """Replay batches 1 through ``state.restart_batch``."""
        for batch in range(1, state.restart_batch + 1):
            state.current_batch = batch
            self.replay_batch_history(state)
