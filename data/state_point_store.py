"""Create and load binary state point files."""

from __future__ import annotations

import logging
from pathlib import Path

from core.checkpointing import state_point_filename
from core.sim_state import ProcessRole, SimulationState
from data.state_point_codec import StatePoint, StatePointCodec, codec_for_role

LOGGER = logging.getLogger(__name__)


def create_state_point(batch: int, state: SimulationState, directory: str | Path = ".") -> Path:
    """Write a state point for ``batch`` and return its path.

    The payload is encoded in memory first, so a field that does not fit the
    layout raises ``StatePointError`` before the file is opened and an existing
    file of the same name stays intact. Otherwise that file is truncated. There
    is no atomic rename: an interrupted write leaves a file the reader rejects
    only if its structure no longer adds up.
    """
    path = Path(directory) / state_point_filename(batch)
    LOGGER.info("Creating state point %s...", path)
    payload = StatePointCodec().encode(batch, state)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as stream:
        stream.write(payload)
    return path


def load_state_point(
    path: str | Path,
    state: SimulationState,
    role: ProcessRole | str = ProcessRole.MASTER,
) -> StatePoint:
    """Load ``path`` and overwrite the restart-relevant parts of ``state``.

    Args:
        path: State point file; its name does not need to follow the
            ``restart.<batch>.binary`` convention.
        state: Simulation state to validate against and overwrite.
        role: Process role. Workers never read the tally sections; those
            are expected to arrive through a separate broadcast.

    Returns:
        The decoded ``StatePoint``.

    Raises:
        StatePointError: On a revision, count or dimension mismatch, or when
            the file ends early. ``state`` is left untouched in that case.
    """
    path = Path(path)
    LOGGER.info("Loading state point %s...", path)
    codec = codec_for_role(role)
    with path.open("rb") as stream:
        point = codec.read(stream, state)
    apply_state_point(point, state)
    return point


def apply_state_point(point: StatePoint, state: SimulationState) -> None:
    """Overwrite ``state`` with a decoded state point."""
    state.rng.restore(point.seed)
    state.config = point.config
    state.restart_batch = point.restart_batch
    state.restart_run = True
    state.current_batch = 0
    state.tallies_on = point.config.n_inactive == 0
    # Rebuilt batch by batch during history replay.
    state.keff.reset()
    state.n_realizations = 0

    batch = point.restart_batch
    state.ensure_history_capacity(max(point.config.n_batches, batch))
    if point.k_batch is not None:
        state.k_batch[:batch] = point.k_batch
    if point.entropy is not None:
        state.entropy[:batch] = point.entropy

    if point.global_sum is not None and point.global_sum_sq is not None:
        state.global_tallies.sum[:] = point.global_sum
        state.global_tallies.sum_sq[:] = point.global_sum_sq

    if point.tally_sums is not None:
        for tally, (tally_sum, tally_sum_sq) in zip(state.tallies, point.tally_sums):
            tally.sum[...] = tally_sum
            tally.sum_sq[...] = tally_sum_sq
