"""Data types for the chain subsystem."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SamplerTimings:
    """Snapshot of a chain's performance counters.

    Attributes:
        t_sample_ms: Total time spent in successful ``sample()`` calls (ms).
        n_sample: Number of successful ``sample()`` calls.
    """

    t_sample_ms: float
    n_sample: int

    @property
    def mean_sample_ms(self) -> float:
        """Average time per sample, or 0.0 before the first sample."""
        if self.n_sample == 0:
            return 0.0
        return self.t_sample_ms / self.n_sample
