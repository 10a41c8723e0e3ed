"""Explicit simulation state passed into state point and replay operations."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from core.analytics import RunningKeffEstimate
from core.deterministic_rng import DeterministicRNG


# Analog, collision and tracklength k-effective estimators plus leakage.
N_GLOBAL_TALLIES = 4
K_ANALOG = 0
K_COLLISION = 1
K_TRACKLENGTH = 2
LEAKAGE = 3


class RunMode(int, enum.Enum):
    """Run modes as encoded in the state point file."""

    FIXED_SOURCE = 1
    CRITICALITY = 2


class ProcessRole(str, enum.Enum):
    """Role of the process performing state point I/O."""

    MASTER = "master"
    WORKER = "worker"


@dataclass
class RunConfig:
    """Run parameters persisted in every state point."""

    run_mode: RunMode = RunMode.CRITICALITY
    n_particles: int = 1000
    n_batches: int = 10
    n_inactive: int = 0
    gen_per_batch: int = 1


@dataclass
class GlobalTallies:
    """Fixed block of ``N_GLOBAL_TALLIES`` (sum, sum_sq) cells."""

    sum: NDArray[np.float64] = field(default_factory=lambda: np.zeros(N_GLOBAL_TALLIES))
    sum_sq: NDArray[np.float64] = field(default_factory=lambda: np.zeros(N_GLOBAL_TALLIES))

    def accumulate(self, scores: Sequence[float]) -> None:
        values = np.asarray(scores, dtype=np.float64)
        if values.shape != (N_GLOBAL_TALLIES,):
            raise ValueError(
                f"Expected {N_GLOBAL_TALLIES} global tally scores, got shape {values.shape}."
            )
        self.sum += values
        self.sum_sq += values * values


@dataclass
class Tally:
    """User tally accumulating (sum, sum_sq) over filter bins x score bins."""

    n_filter_bins: int
    n_score_bins: int
    name: str = ""
    sum: NDArray[np.float64] = field(init=False)
    sum_sq: NDArray[np.float64] = field(init=False)

    def __post_init__(self) -> None:
        if self.n_filter_bins <= 0 or self.n_score_bins <= 0:
            raise ValueError("Tally dimensions must be > 0")
        self.sum = np.zeros(self.shape)
        self.sum_sq = np.zeros(self.shape)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_filter_bins, self.n_score_bins)

    def accumulate(self, scores: NDArray[np.float64]) -> None:
        values = np.asarray(scores, dtype=np.float64)
        if values.shape != self.shape:
            raise ValueError(f"Tally '{self.name}' expects scores of shape {self.shape}, got {values.shape}.")
        self.sum += values
        self.sum_sq += values * values


@dataclass
class SimulationState:
    """Everything a running simulation holds that a state point touches.

    ``k_batch`` and ``entropy`` are indexed by ``batch - 1`` and sized to
    ``config.n_batches``; only entries up to the current (or restart) batch
    carry meaning.

    ``n_realizations`` counts active batches in every run mode; ``keff`` only
    collects k-effective samples in criticality runs.
    """

    config: RunConfig = field(default_factory=RunConfig)
    rng: DeterministicRNG = field(default_factory=lambda: DeterministicRNG(1))
    entropy_on: bool = False
    tallies: list[Tally] = field(default_factory=list)
    global_tallies: GlobalTallies = field(default_factory=GlobalTallies)
    keff: RunningKeffEstimate = field(default_factory=RunningKeffEstimate)
    n_realizations: int = 0
    current_batch: int = 0
    restart_batch: int = 0
    restart_run: bool = False
    tallies_on: bool = False
    k_batch: NDArray[np.float64] = field(init=False)
    entropy: NDArray[np.float64] = field(init=False)

    def __post_init__(self) -> None:
        self.k_batch = np.zeros(self.config.n_batches)
        self.entropy = np.zeros(self.config.n_batches)
        # Without inactive batches there is no transition to wait for.
        self.tallies_on = self.config.n_inactive == 0

    @property
    def seed(self) -> int:
        return self.rng.seed

    @property
    def n_tallies(self) -> int:
        return len(self.tallies)

    @property
    def is_criticality(self) -> bool:
        return self.config.run_mode is RunMode.CRITICALITY

    def ensure_history_capacity(self, n_batches: int) -> None:
        """Grow the per-batch history arrays to hold ``n_batches`` entries."""
        if self.k_batch.size >= n_batches:
            return
        self.k_batch = np.concatenate([self.k_batch, np.zeros(n_batches - self.k_batch.size)])
        self.entropy = np.concatenate([self.entropy, np.zeros(n_batches - self.entropy.size)])
