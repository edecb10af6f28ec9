"""Filtering stages that shrink the candidate set.

Every filter honours a ``min_keep`` floor: it never leaves fewer than
``min_keep`` candidates, and keeps everything when fewer exist. Filters that
need probabilities normalize first; after truncation the survivors are back
in the logit domain until the next softmax.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from sampler_chain.stages.base import (
    Stage,
    require_int,
    require_min_keep,
    require_unit_interval,
)
from sampler_chain.stages.registry import StageRegistry

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution

# Below this total curvature the tail-free weights are treated as flat.
_TAIL_FREE_FLAT_EPSILON = 1e-6


def _first_reaching(cumulative: np.ndarray, threshold: float) -> int:
    """Length of the shortest prefix whose cumulative value is >= *threshold*.

    Returns the full length when no prefix reaches it (rounding near 1.0).
    """
    hits = np.flatnonzero(cumulative >= threshold)
    return int(hits[0]) + 1 if hits.size else int(cumulative.shape[0])


@StageRegistry.register("top_k")
class TopKStage(Stage):
    """Keeps the ``k`` highest-valued candidates. ``k <= 0`` disables the stage."""

    def __init__(self, k: int) -> None:
        self._k = require_int("k", k)

    @property
    def name(self) -> str:
        """Return ``'top_k'``."""
        return "top_k"

    def apply(self, distribution: Distribution) -> None:
        if self._k <= 0 or len(distribution) == 0:
            return
        distribution.sort_descending()
        distribution.keep_prefix(self._k)

    def describe(self) -> str:
        return f"top-k {self._k}"


@StageRegistry.register("top_p")
class TopPStage(Stage):
    """Nucleus filtering: smallest prefix with cumulative probability >= ``p``.

    ``p >= 1`` disables the stage. ``p = 0`` still keeps ``min_keep`` tokens.
    """

    def __init__(self, p: float, min_keep: int = 1) -> None:
        self._p = require_unit_interval("p", p)
        self._min_keep = require_min_keep(min_keep)

    @property
    def name(self) -> str:
        """Return ``'top_p'``."""
        return "top_p"

    def apply(self, distribution: Distribution) -> None:
        if self._p >= 1.0 or len(distribution) == 0:
            return
        distribution.sort_descending()
        cumulative = np.cumsum(distribution.softmax())
        distribution.keep_prefix(_first_reaching(cumulative, self._p), self._min_keep)

    def describe(self) -> str:
        return f"top-p {self._p:.3f}"


@StageRegistry.register("min_p")
class MinPStage(Stage):
    """Keeps candidates whose probability is at least ``p`` times the maximum.

    ``p <= 0`` disables the stage.
    """

    def __init__(self, p: float, min_keep: int = 1) -> None:
        self._p = require_unit_interval("p", p)
        self._min_keep = require_min_keep(min_keep)

    @property
    def name(self) -> str:
        """Return ``'min_p'``."""
        return "min_p"

    def apply(self, distribution: Distribution) -> None:
        if self._p <= 0.0 or len(distribution) == 0:
            return
        probs = distribution.softmax()
        threshold = self._p * float(np.max(probs))
        distribution.truncate(self._min_keep, probs >= threshold)

    def describe(self) -> str:
        return f"min-p {self._p:.3f}"


@StageRegistry.register("tail_free")
class TailFreeStage(Stage):
    """Tail-free sampling.

    Sorts by probability, takes the absolute second difference of the sorted
    probabilities and normalizes it to a distribution over positions. The
    tail starts at the first position (at or beyond ``min_keep``) where the
    cumulative curvature exceeds ``z``. ``z >= 1`` disables the stage.

    Reference: https://www.trentonbricken.com/Tail-Free-Sampling/
    """

    def __init__(self, z: float, min_keep: int = 1) -> None:
        self._z = require_unit_interval("z", z)
        self._min_keep = require_min_keep(min_keep)

    @property
    def name(self) -> str:
        """Return ``'tail_free'``."""
        return "tail_free"

    def apply(self, distribution: Distribution) -> None:
        if self._z >= 1.0 or len(distribution) <= 2:
            return
        distribution.sort_descending()
        probs = distribution.softmax()

        first = probs[:-1] - probs[1:]
        second = np.abs(first[:-1] - first[1:])
        total = float(np.sum(second))
        if total > _TAIL_FREE_FLAT_EPSILON:
            second = second / total
        else:
            second = np.full(second.shape[0], 1.0 / second.shape[0])

        cumulative = np.cumsum(second)
        positions = np.arange(cumulative.shape[0])
        cut = np.flatnonzero((cumulative > self._z) & (positions >= self._min_keep))
        keep = int(cut[0]) if cut.size else len(distribution)
        distribution.keep_prefix(keep, self._min_keep)

    def describe(self) -> str:
        return f"tail-free {self._z:.3f}"


@StageRegistry.register("typical")
class TypicalStage(Stage):
    """Locally typical sampling.

    Ranks candidates by how far their information content ``-ln P`` lies
    from the distribution's entropy ``H`` and keeps the most typical ones
    until their cumulative probability reaches ``p``. The result is ordered
    by typicality, not by probability. ``p >= 1`` disables the stage.

    Reference: "Typical Decoding for Natural Language Generation"
    """

    def __init__(self, p: float, min_keep: int = 1) -> None:
        self._p = require_unit_interval("p", p)
        self._min_keep = require_min_keep(min_keep)

    @property
    def name(self) -> str:
        """Return ``'typical'``."""
        return "typical"

    def apply(self, distribution: Distribution) -> None:
        if self._p >= 1.0 or len(distribution) == 0:
            return
        entropy = distribution.entropy()
        probs = distribution.softmax()

        # Zero-probability tokens get infinite deviation and sort last.
        with np.errstate(divide="ignore"):
            deviation = np.abs(-np.log(probs) - entropy)
        order = np.lexsort((distribution.ids, deviation))

        keep = _first_reaching(np.cumsum(probs[order]), self._p)
        keep = min(max(keep, self._min_keep), len(distribution))
        distribution.take(order[:keep], is_sorted=False)

    def describe(self) -> str:
        return f"typical {self._p:.3f}"
