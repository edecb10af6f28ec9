"""Base class for sampler stages and shared parameter checks.

A stage is one transformation over a :class:`Distribution`. Stages that
carry history across steps override :meth:`Stage.accept` and
:meth:`Stage.reset`; stages that draw randomly override
:meth:`Stage.checkpoint` and :meth:`Stage.rollback` so a failed step can be
undone by the chain.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np

from sampler_chain.exceptions import ConstructionError, EmptyDistributionError, NumericError

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution


class Stage(ABC):
    """Abstract base class for chain stages.

    Subclasses that select the final token set ``selects_token = True`` and
    call ``distribution.select()`` at the end of :meth:`apply`.
    """

    selects_token: ClassVar[bool] = False

    # Chain that owns the stage, set once by SamplerChain.
    _owner: object | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry identifier of the stage (e.g., ``'top_k'``)."""

    @abstractmethod
    def apply(self, distribution: Distribution) -> None:
        """Transform *distribution* in place.

        Args:
            distribution: Candidate set for the current step.

        Raises:
            EmptyDistributionError: If the stage needs candidates and has none.
            NumericError: If the transform produces NaN or infinite values.
        """

    @property
    def n_vocab(self) -> int | None:
        """Vocabulary size the stage was built for, if it needs one."""
        return None

    def accept(self, token_id: int) -> None:
        """Record that *token_id* was emitted. No-op for stateless stages."""

    def reset(self) -> None:
        """Clear history state. No-op for stateless stages."""

    def checkpoint(self) -> Any:
        """Capture state that :meth:`apply` may mutate."""
        return None

    def rollback(self, state: Any) -> None:
        """Restore state captured by :meth:`checkpoint`."""

    @property
    def owner(self) -> object | None:
        """The chain that owns this stage, or ``None`` if it is unowned."""
        return self._owner

    def claim(self, owner: object) -> None:
        """Bind the stage to *owner*. A stage belongs to at most one chain.

        Raises:
            ConstructionError: If a different owner already holds the stage.
        """
        if self._owner is not None and self._owner is not owner:
            raise ConstructionError(f"Stage '{self.name}' already belongs to another chain")
        self._owner = owner

    def close(self) -> None:
        """Release resources held by the stage."""

    def describe(self) -> str:
        """Short human-readable form used in chain descriptions."""
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.describe()!r})"


def require_finite(name: str, value: float) -> float:
    """Return *value* as a float, rejecting NaN and infinities."""
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConstructionError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(result):
        raise ConstructionError(f"{name} must be finite, got {value!r}")
    return result


def require_unit_interval(name: str, value: float) -> float:
    """Return *value* as a float in [0, 1]."""
    result = require_finite(name, value)
    if not 0.0 <= result <= 1.0:
        raise ConstructionError(f"{name} must be in [0, 1], got {value!r}")
    return result


def require_int(name: str, value: int, minimum: int | None = None) -> int:
    """Return *value* as an int, optionally bounded below by *minimum*."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConstructionError(f"{name} must be an integer, got {value!r}")
    result = int(value)
    if minimum is not None and result < minimum:
        raise ConstructionError(f"{name} must be >= {minimum}, got {result}")
    return result


def require_min_keep(min_keep: int) -> int:
    """Filtering stages must always retain at least one candidate."""
    return require_int("min_keep", min_keep, minimum=1)


def argmax_position(distribution: Distribution) -> int:
    """Position of the largest logit, ties broken by the lowest token id.

    Raises:
        EmptyDistributionError: If the distribution has no entries.
        NumericError: If every logit is ``-inf``.
    """
    if len(distribution) == 0:
        raise EmptyDistributionError("Cannot pick the maximum of an empty distribution")
    logits = distribution.logits
    best = np.max(logits)
    if np.isneginf(best):
        raise NumericError("Every logit is -inf; no token can be selected")
    tied = np.flatnonzero(logits == best)
    return int(tied[np.argmin(distribution.ids[tied])])
