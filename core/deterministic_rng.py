"""Seed owner deriving reproducible per-batch random streams."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

import numpy as np


@dataclass
class DeterministicRNG:
    """Owns the run seed without touching global random state.

    Only ``seed`` is written to a state point, so every batch stream must be
    derivable from the seed and the batch index alone.
    """

    seed: int

    def __post_init__(self) -> None:
        self.seed = int(self.seed)

    def stream(self, batch: int) -> np.random.Generator:
        """Return an independent generator for ``batch``."""
        # Stable cross-process derivation instead of built-in hash().
        digest = hashlib.sha256(f"{self.seed}:batch:{int(batch)}".encode("utf-8")).digest()
        derived_seed = int.from_bytes(digest[:8], byteorder="big", signed=False)
        return np.random.default_rng(derived_seed)

    def restore(self, seed: int) -> None:
        """Overwrite the seed, e.g. with the one read from a state point."""
        self.seed = int(seed)
