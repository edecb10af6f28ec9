"""Data types for the diagnostic logging subsystem."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Immutable record of a single successful sampling step.

    Attributes:
        timestamp_ns: Monotonic time at the start of the step (nanoseconds).
        total_sampling_ms: Time spent running every stage (milliseconds).
        token_id: Vocabulary index of the selected token.
        token_prob: Probability of the selected token in the final
            distribution, or ``None`` if it was never normalized.
        num_candidates: Number of candidates surviving to the terminal stage.
        chain: Human-readable description of the chain that produced it.
    """

    # Timing
    timestamp_ns: int
    total_sampling_ms: float

    # Selection
    token_id: int
    token_prob: float | None
    num_candidates: int

    # Chain snapshot
    chain: str
