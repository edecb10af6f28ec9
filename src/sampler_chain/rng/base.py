"""Abstract base class for per-stage random sources.

Every stage that draws a token owns exactly one source. The ABC provides a
concrete :meth:`RandomSource.sample_index` that turns one uniform draw into
a categorical choice via CDF lookup. Subclasses implement the uniform draw
and state capture so that a failed sampling step can be rolled back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from sampler_chain.exceptions import EmptyDistributionError, NumericError


class RandomSource(ABC):
    """Abstract base for stage-private pseudo-random generators."""

    # Stage that draws from this source, set once by the stage.
    _owner: object | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source identifier (e.g., ``'seeded'``)."""

    @abstractmethod
    def uniform(self) -> float:
        """Return one float uniformly distributed on [0, 1)."""

    @abstractmethod
    def get_state(self) -> Any:
        """Capture the generator state for a later :meth:`set_state`."""

    @abstractmethod
    def set_state(self, state: Any) -> None:
        """Restore a state captured by :meth:`get_state`."""

    @abstractmethod
    def reset(self) -> None:
        """Return the generator to its initial seed."""

    @property
    def owner(self) -> object | None:
        """The stage drawing from this source, or ``None`` if unowned."""
        return self._owner

    def claim(self, owner: object) -> None:
        """Bind the source to *owner*. A source serves at most one stage.

        Raises:
            ValueError: If a different owner already holds the source.
        """
        if self._owner is not None and self._owner is not owner:
            raise ValueError(f"Random source '{self.name}' is already owned by another stage")
        self._owner = owner

    def sample_index(self, weights: np.ndarray) -> int:
        """Draw an index with probability proportional to *weights*.

        Builds the CDF by cumulative sum and binary-searches it with a single
        uniform draw scaled to the total mass.

        Args:
            weights: 1-D array of non-negative weights (need not sum to 1).

        Returns:
            Position of the chosen entry.

        Raises:
            EmptyDistributionError: If *weights* is empty.
            NumericError: If the total mass is zero or not finite.
        """
        if weights.shape[0] == 0:
            raise EmptyDistributionError("Cannot draw from an empty distribution")
        cdf = np.cumsum(weights)
        total = float(cdf[-1])
        if not np.isfinite(total) or total <= 0.0:
            raise NumericError(f"Cannot draw from weights with total mass {total}")

        u = self.uniform() * total
        idx = int(np.searchsorted(cdf, u, side="right"))

        # Clamp to valid range; u == total can only happen through rounding.
        return min(idx, weights.shape[0] - 1)
