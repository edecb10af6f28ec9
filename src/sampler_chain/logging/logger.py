"""Diagnostic logger for per-step sampling events.

Uses the standard ``logging`` module with the ``"sampler_chain"`` logger.
No ``print()`` statements. Supports three verbosity levels and an
in-memory diagnostic mode for post-hoc analysis.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sampler_chain.config import SamplerChainConfig
    from sampler_chain.logging.types import StepRecord

logger = logging.getLogger("sampler_chain")


class SamplingLogger:
    """Per-step diagnostic logger.

    Log levels:
        ``"none"``: No logging output. Records are still stored if
        ``diagnostic_mode=True``.

        ``"summary"``: One line per step with the token, its probability,
        the surviving candidate count and timing.

        ``"full"``: Full JSON dump of all record fields.

    Diagnostic mode stores all records in memory for post-hoc statistical
    analysis via ``get_diagnostic_data()`` and ``get_summary_stats()``.
    """

    def __init__(self, config: SamplerChainConfig) -> None:
        """Initialize the logger from configuration.

        Args:
            config: Configuration providing ``log_level`` and ``diagnostic_mode``.
        """
        self._log_level = config.log_level
        self._diagnostic_mode = config.diagnostic_mode
        self._records: list[StepRecord] = []

    @property
    def log_level(self) -> str:
        return self._log_level

    def log_step(self, record: StepRecord) -> None:
        """Log a single sampling step.

        Args:
            record: Immutable record of the chain execution.
        """
        # Store in memory if diagnostic mode is enabled.
        if self._diagnostic_mode:
            self._records.append(record)

        if self._log_level == "none":
            return

        if self._log_level == "summary":
            logger.info(
                "token=%d prob=%s candidates=%d total=%.2fms",
                record.token_id,
                "n/a" if record.token_prob is None else f"{record.token_prob:.4f}",
                record.num_candidates,
                record.total_sampling_ms,
            )
        elif self._log_level == "full":
            logger.info("step_record: %s", json.dumps(asdict(record), default=str))

    def get_diagnostic_data(self) -> list[StepRecord]:
        """Return all stored records (requires ``diagnostic_mode=True``).

        Returns:
            List of all StepRecord instances logged so far.
            Empty if diagnostic_mode is False.
        """
        return list(self._records)

    def clear(self) -> None:
        """Drop all stored records."""
        self._records.clear()

    def get_summary_stats(self) -> dict[str, Any]:
        """Compute summary statistics over all stored records.

        Returns:
            Dictionary with aggregate stats, or empty dict if no records.
        """
        if not self._records:
            return {}

        probs = [r.token_prob for r in self._records if r.token_prob is not None]
        candidates = [r.num_candidates for r in self._records]
        total_times = [r.total_sampling_ms for r in self._records]

        n = len(self._records)
        return {
            "total_steps": n,
            "unique_tokens": len({r.token_id for r in self._records}),
            "mean_prob": sum(probs) / len(probs) if probs else None,
            "mean_candidates": sum(candidates) / n,
            "min_candidates": min(candidates),
            "max_candidates": max(candidates),
            "mean_total_ms": sum(total_times) / n,
            "max_total_ms": max(total_times),
        }
