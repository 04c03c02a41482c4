"""Welford's online mean/variance for slider scores."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class RunningStats:
    """Streaming mean and M2 accumulator.

    ``m2`` is the sum of squared deviations from the running mean.  With
    ``count == 0`` the ``mean`` is the configured prior and is replaced
    entirely by the first sample.
    """

    count: int = 0
    mean: float = 50.0
    m2: float = 0.0

    def push(self, x: float) -> RunningStats:
        n = self.count + 1
        delta = x - self.mean
        new_mean = self.mean + delta / n
        # First sample: the prior mean must not leak into M2.
        new_m2 = 0.0 if n == 1 else self.m2 + delta * (x - new_mean)
        return RunningStats(count=n, mean=new_mean, m2=max(new_m2, 0.0))

    @property
    def variance(self) -> float | None:
        """Sample variance, ``None`` until at least two samples exist."""
        if self.count < 2:
            return None
        return self.m2 / (self.count - 1)

    @property
    def std(self) -> float | None:
        var = self.variance
        return math.sqrt(var) if var is not None else None
