"""Running batch statistics for k-effective."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class RunningKeffEstimate:
    """Pooled first/second moments of k-effective over active batches.

    ``std`` follows ``sqrt((sum_sq/n - mean**2) / (n - 1))`` as written; with a
    single realization that is 0/0 and the estimate reads NaN. Only that case is
    silenced; a variance that round-off drives negative for more realizations
    still emits numpy's RuntimeWarning.
    """

    n_realizations: int = 0
    sum: float = 0.0
    sum_sq: float = 0.0
    mean: float = 0.0
    std: float = 0.0

    def add(self, k: float) -> None:
        """Fold one active-batch k-effective into the estimate."""
        k = float(k)
        self.n_realizations += 1
        self.sum += k
        self.sum_sq += k * k

        n = np.float64(self.n_realizations)
        self.mean = float(self.sum / n)
        spread = np.float64(self.sum_sq) / n - self.mean * self.mean
        if self.n_realizations == 1:
            # 0/0: undefined for one realization.
            with np.errstate(divide="ignore", invalid="ignore"):
                variance = spread / (n - 1.0)
        else:
            variance = spread / (n - 1.0)
        self.std = float(np.sqrt(variance))

    def reset(self) -> None:
        self.n_realizations = 0
        self.sum = 0.0
        self.sum_sq = 0.0
        self.mean = 0.0
        self.std = 0.0
