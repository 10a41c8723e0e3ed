"""Tests for state point compatibility gates and role-dependent reading."""

from __future__ import annotations

import logging
import struct
from pathlib import Path

import pytest

from core.deterministic_rng import DeterministicRNG
from core.sim_state import N_GLOBAL_TALLIES, ProcessRole, RunConfig, RunMode, SimulationState, Tally
from data.state_point_codec import (
    StatePointCountError,
    StatePointDimensionError,
    StatePointError,
    StatePointRevisionError,
    StatePointTruncatedError,
)
from data.state_point_store import create_state_point, load_state_point

# revision, version, seed, run parameters, batch index
_HISTORY_OFFSET = 52


def _state(shapes: tuple[tuple[int, int], ...] = ((3, 2), (2, 2)), seed: int = 77) -> SimulationState:
    return SimulationState(
        config=RunConfig(run_mode=RunMode.CRITICALITY, n_particles=1000, n_batches=6, n_inactive=1, gen_per_batch=1),
        rng=DeterministicRNG(seed),
        entropy_on=False,
        tallies=[Tally(f, s) for f, s in shapes],
    )


def _write(tmp_path: Path, batch: int = 3) -> Path:
    state = _state()
    state.k_batch[:batch] = [1.0 + 0.01 * i for i in range(batch)]
    state.global_tallies.sum[:] = 3.0
    for tally in state.tallies:
        tally.sum[...] = 2.0
    state.tallies_on = True
    return create_state_point(batch, state, tmp_path)


def _patch_int(path: Path, offset: int, *values: int) -> None:
    data = bytearray(path.read_bytes())
    struct.pack_into(f"<{len(values)}i", data, offset, *values)
    path.write_bytes(bytes(data))


def _global_offset(batch: int = 3) -> int:
    return _HISTORY_OFFSET + batch * 8


def test_revision_mismatch_is_fatal(tmp_path) -> None:
    path = _write(tmp_path)
    _patch_int(path, 0, 99)

    with pytest.raises(StatePointRevisionError, match="revision 99"):
        load_state_point(path, _state())


def test_revision_checked_before_anything_else(tmp_path) -> None:
    path = tmp_path / "only_revision.binary"
    path.write_bytes(struct.pack("<i", 12))

    with pytest.raises(StatePointRevisionError):
        load_state_point(path, _state())


def test_version_mismatch_warns_and_completes(tmp_path, caplog) -> None:
    path = _write(tmp_path)
    _patch_int(path, 4, 9, 9, 9)
    state = _state()

    with caplog.at_level(logging.WARNING):
        point = load_state_point(path, state)

    assert "different version" in caplog.text
    assert point.header.version == (9, 9, 9)
    assert not point.version_matches
    assert point.tallies_read
    assert state.restart_batch == 3


def test_global_tally_count_mismatch_is_fatal(tmp_path) -> None:
    path = _write(tmp_path)
    _patch_int(path, _global_offset(), N_GLOBAL_TALLIES + 1)

    with pytest.raises(StatePointCountError, match="global tallies"):
        load_state_point(path, _state())


def test_tally_count_mismatch_is_fatal(tmp_path) -> None:
    path = _write(tmp_path)

    with pytest.raises(StatePointCountError, match="stored 2, configured 3"):
        load_state_point(path, _state(shapes=((3, 2), (2, 2), (1, 1))))


def test_dimension_mismatch_identifies_tally(tmp_path) -> None:
    path = _write(tmp_path)

    with pytest.raises(StatePointDimensionError, match="tally 2") as excinfo:
        load_state_point(path, _state(shapes=((3, 2), (2, 3))))

    assert excinfo.value.tally_index == 2
    assert excinfo.value.stored == (2, 2)
    assert excinfo.value.allocated == (2, 3)


def test_failed_load_leaves_state_untouched(tmp_path) -> None:
    path = _write(tmp_path)
    state = _state(shapes=((3, 2), (4, 4)), seed=5)

    with pytest.raises(StatePointDimensionError):
        load_state_point(path, state)

    assert state.seed == 5
    assert not state.restart_run
    assert not state.k_batch.any()
    assert not state.global_tallies.sum.any()


def test_truncated_file_is_rejected(tmp_path) -> None:
    path = _write(tmp_path)
    path.write_bytes(path.read_bytes()[:-5])

    with pytest.raises(StatePointTruncatedError, match="tally 2 sums of squares"):
        load_state_point(path, _state())


def test_unknown_run_mode_is_rejected(tmp_path) -> None:
    path = _write(tmp_path)
    _patch_int(path, 24, 7)

    with pytest.raises(StatePointError, match="run mode 7"):
        load_state_point(path, _state())


def test_worker_never_reads_tally_sections(tmp_path) -> None:
    path = _write(tmp_path)
    # Drop everything after the batch history.
    path.write_bytes(path.read_bytes()[: _global_offset()])
    state = _state(shapes=((9, 9),))

    point = load_state_point(path, state, role=ProcessRole.WORKER)

    assert point.role is ProcessRole.WORKER
    assert not point.tallies_read
    assert point.global_sum is None
    assert state.restart_batch == 3
    assert state.k_batch[2] == pytest.approx(1.02)
    assert not state.global_tallies.sum.any()

    with pytest.raises(StatePointTruncatedError):
        load_state_point(path, _state(), role=ProcessRole.MASTER)


def test_worker_ignores_inconsistent_tally_sections(tmp_path) -> None:
    path = _write(tmp_path)
    _patch_int(path, _global_offset(), 123)

    point = load_state_point(path, _state(shapes=()), role="worker")

    assert point.restart_batch == 3


def test_unknown_role_is_rejected(tmp_path) -> None:
    path = _write(tmp_path)

    with pytest.raises(ValueError, match="Unknown process role"):
        load_state_point(path, _state(), role="observer")
