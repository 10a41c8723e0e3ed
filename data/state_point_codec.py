"""Positional binary layout of state point files.

One revision tag selects the whole layout. Fields follow each other with no
padding and no length prefixes; array lengths are implied by scalar fields
written earlier in the file (the batch index, the tally count, the tally
dimensions). Integers are little-endian 4-byte values, except the seed and
the particle count which are 8 bytes wide. Floats are 8-byte IEEE values and
tally matrices are stored column-major, filter bins varying fastest.

Writing is the same for every process. Reading comes in two variants chosen by
process role: the master reads and validates the accumulator sections, while
workers stop after the batch history.

The writer emits the tally section whenever tallies are on, while the reader
expects it only when the stored batch index is past the inactive count. At
``batch == n_inactive`` the two disagree and the tally bytes at the end of the
file are written but never read. Both sides keep their condition.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass, field
from typing import BinaryIO

import numpy as np
from numpy.typing import NDArray

from core.checkpointing import REVISION_STATEPOINT, VERSION, StatePointHeader
from core.sim_state import N_GLOBAL_TALLIES, ProcessRole, RunConfig, RunMode, SimulationState

LOGGER = logging.getLogger(__name__)

_INT = struct.Struct("<i")
_LONG = struct.Struct("<q")
_FLOAT_DTYPE = np.dtype("<f8")


class StatePointError(ValueError):
    """Raised when a state point cannot be written or loaded into the current run."""


class StatePointRevisionError(StatePointError):
    """Raised when the file layout revision differs from the supported one."""


class StatePointCountError(StatePointError):
    """Raised when the stored number of global tallies or tallies differs."""


class StatePointDimensionError(StatePointError):
    """Raised when a stored tally shape differs from the allocated shape."""

    def __init__(self, tally_index: int, stored: tuple[int, int], allocated: tuple[int, int]) -> None:
        self.tally_index = tally_index
        self.stored = stored
        self.allocated = allocated
        super().__init__(
            f"Tally dimensions do not match in state point: tally {tally_index} "
            f"stored {stored[0]}x{stored[1]}, allocated {allocated[0]}x{allocated[1]}."
        )


class StatePointTruncatedError(StatePointError):
    """Raised when the file ends before a required field."""


@dataclass
class StatePoint:
    """Decoded contents of one state point file."""

    header: StatePointHeader
    seed: int
    config: RunConfig
    restart_batch: int
    k_batch: NDArray[np.float64] | None = None
    entropy: NDArray[np.float64] | None = None
    global_sum: NDArray[np.float64] | None = None
    global_sum_sq: NDArray[np.float64] | None = None
    tally_sums: list[tuple[NDArray[np.float64], NDArray[np.float64]]] | None = None
    role: ProcessRole = ProcessRole.MASTER

    @property
    def tallies_read(self) -> bool:
        return self.tally_sums is not None

    @property
    def version_matches(self) -> bool:
        return self.header.version == VERSION


@dataclass
class _FieldWriter:
    stream: BinaryIO

    def _pack(self, layout: struct.Struct, value: int, what: str) -> None:
        try:
            self.stream.write(layout.pack(int(value)))
        except struct.error as exc:
            raise StatePointError(
                f"Cannot write {what} {value}: it does not fit the {layout.size}-byte signed field."
            ) from exc

    def ints(self, what: str, *values: int) -> None:
        for value in values:
            self._pack(_INT, value, what)

    def long(self, what: str, value: int) -> None:
        self._pack(_LONG, value, what)

    def floats(self, values: NDArray[np.float64]) -> None:
        self.stream.write(np.asarray(values, dtype=_FLOAT_DTYPE).tobytes(order="F"))


@dataclass
class _FieldReader:
    stream: BinaryIO
    offset: int = field(default=0, init=False)

    def _take(self, n_bytes: int, what: str) -> bytes:
        data = self.stream.read(n_bytes)
        if len(data) != n_bytes:
            raise StatePointTruncatedError(
                f"State point ended at byte {self.offset + len(data)} while reading {what} "
                f"({n_bytes} bytes expected, {len(data)} available)."
            )
        self.offset += n_bytes
        return data

    def scalar(self, what: str) -> int:
        return _INT.unpack(self._take(_INT.size, what))[0]

    def scalars(self, count: int, what: str) -> tuple[int, ...]:
        return tuple(self.scalar(what) for _ in range(count))

    def long(self, what: str) -> int:
        return _LONG.unpack(self._take(_LONG.size, what))[0]

    def floats(self, shape: int | tuple[int, ...], what: str) -> NDArray[np.float64]:
        count = int(np.prod(shape))
        data = self._take(count * _FLOAT_DTYPE.itemsize, what)
        array = np.frombuffer(data, dtype=_FLOAT_DTYPE).astype(np.float64)
        return array.reshape(shape, order="F")


class StatePointCodec:
    """Revision-1 layout; this base variant reads what every process needs."""

    revision = REVISION_STATEPOINT
    role = ProcessRole.WORKER

    def encode(self, batch: int, state: SimulationState) -> bytes:
        """Return the complete file contents for a checkpoint taken after ``batch``.

        Every field is range-checked while the payload is assembled in memory,
        so a value that does not fit its field raises ``StatePointError``
        before any byte reaches the destination.
        """
        if batch < 0 or batch > state.k_batch.size:
            raise ValueError(f"Batch {batch} is outside the allocated history of {state.k_batch.size} batches.")
        buffer = io.BytesIO()
        out = _FieldWriter(buffer)
        config = state.config

        out.ints("revision", self.revision)
        out.ints("version", *VERSION)
        out.long("seed", state.seed)
        out.ints("run mode", int(config.run_mode))
        out.long("particle count", config.n_particles)
        out.ints("batch counts", config.n_batches, config.n_inactive, config.gen_per_batch)
        out.ints("batch index", batch)

        if config.run_mode is RunMode.CRITICALITY:
            out.floats(state.k_batch[:batch])
            if state.entropy_on:
                out.floats(state.entropy[:batch])

        out.ints("global tally count", N_GLOBAL_TALLIES)
        out.floats(state.global_tallies.sum)
        out.floats(state.global_tallies.sum_sq)

        if state.tallies_on:
            out.ints("tally count", state.n_tallies)
            for index, tally in enumerate(state.tallies, start=1):
                out.ints(f"tally {index} dimensions", *tally.shape)
                out.floats(tally.sum)
                out.floats(tally.sum_sq)
        return buffer.getvalue()

    def read(self, stream: BinaryIO, state: SimulationState) -> StatePoint:
        """Decode and validate a state point against ``state``.

        ``state`` is only consulted (entropy flag, allocated tally shapes);
        applying the result is left to the caller so a failed load leaves it
        untouched.
        """
        src = _FieldReader(stream)

        revision = src.scalar("revision")
        if revision != self.revision:
            raise StatePointRevisionError(
                f"State point binary revision {revision} does not match current revision {self.revision}."
            )

        version = src.scalars(3, "version")
        if version != VERSION:
            LOGGER.warning(
                "State point file was created with a different version (%s) than the current one (%s).",
                ".".join(str(part) for part in version),
                ".".join(str(part) for part in VERSION),
            )

        seed = src.long("seed")
        mode_value = src.scalar("run mode")
        try:
            run_mode = RunMode(mode_value)
        except ValueError as exc:
            raise StatePointError(f"Unknown run mode {mode_value} in state point.") from exc
        n_particles = src.long("particle count")
        n_batches, n_inactive, gen_per_batch = src.scalars(3, "batch counts")
        config = RunConfig(
            run_mode=run_mode,
            n_particles=n_particles,
            n_batches=n_batches,
            n_inactive=n_inactive,
            gen_per_batch=gen_per_batch,
        )

        restart_batch = src.scalar("batch index")
        if restart_batch < 0:
            raise StatePointError(f"Negative batch index {restart_batch} in state point.")

        point = StatePoint(
            header=StatePointHeader(revision=revision, version=version),
            seed=seed,
            config=config,
            restart_batch=restart_batch,
            role=self.role,
        )
        if run_mode is RunMode.CRITICALITY:
            point.k_batch = src.floats(restart_batch, "k-effective history")
            if state.entropy_on:
                point.entropy = src.floats(restart_batch, "entropy history")

        self._read_accumulators(src, state, point)
        return point

    def _read_accumulators(self, src: _FieldReader, state: SimulationState, point: StatePoint) -> None:
        """Workers leave the tally sections to a later broadcast."""


class WorkerStatePointCodec(StatePointCodec):
    """Reader variant for non-master processes."""


class MasterStatePointCodec(StatePointCodec):
    """Reader variant that also restores global and user tallies."""

    role = ProcessRole.MASTER

    def _read_accumulators(self, src: _FieldReader, state: SimulationState, point: StatePoint) -> None:
        n_global = src.scalar("global tally count")
        if n_global != N_GLOBAL_TALLIES:
            raise StatePointCountError(
                f"Number of global tallies does not match in state point: "
                f"stored {n_global}, expected {N_GLOBAL_TALLIES}."
            )
        point.global_sum = src.floats(N_GLOBAL_TALLIES, "global tally sums")
        point.global_sum_sq = src.floats(N_GLOBAL_TALLIES, "global tally sums of squares")

        if point.restart_batch <= point.config.n_inactive:
            return

        n_tallies = src.scalar("tally count")
        if n_tallies != state.n_tallies:
            raise StatePointCountError(
                f"Number of tallies does not match in state point: stored {n_tallies}, configured {state.n_tallies}."
            )

        sums: list[tuple[NDArray[np.float64], NDArray[np.float64]]] = []
        for index, tally in enumerate(state.tallies, start=1):
            stored = src.scalars(2, f"tally {index} dimensions")
            if stored != tally.shape:
                raise StatePointDimensionError(index, (stored[0], stored[1]), tally.shape)
            tally_sum = src.floats(tally.shape, f"tally {index} sums")
            tally_sum_sq = src.floats(tally.shape, f"tally {index} sums of squares")
            sums.append((tally_sum, tally_sum_sq))
        point.tally_sums = sums


_CODECS: dict[ProcessRole, type[StatePointCodec]] = {
    ProcessRole.MASTER: MasterStatePointCodec,
    ProcessRole.WORKER: WorkerStatePointCodec,
}


def codec_for_role(role: ProcessRole | str) -> StatePointCodec:
    """Return the codec variant for ``role``."""
    try:
        return _CODECS[ProcessRole(role)]()
    except ValueError as exc:
        raise ValueError(f"Unknown process role: {role!r}") from exc
