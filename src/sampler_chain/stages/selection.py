"""Normalization and terminal selection stages.

``greedy`` and ``dist`` end a chain: they mark exactly one entry of the
distribution as selected. ``dist`` owns a private seeded generator so two
chains never share random state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sampler_chain.exceptions import ConstructionError
from sampler_chain.rng import DEFAULT_SEED, SeededRandomSource
from sampler_chain.stages.base import Stage, argmax_position
from sampler_chain.stages.registry import StageRegistry

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution
    from sampler_chain.rng import RandomSource


def make_random_source(owner: Stage, seed: int | None, rng: RandomSource | None) -> RandomSource:
    """Return *rng* if given, else a seeded source for *seed*, claimed by *owner*.

    Raises:
        ConstructionError: If *seed* is negative or *rng* already serves
            another stage.
    """
    try:
        source = rng if rng is not None else SeededRandomSource(seed)
        source.claim(owner)
    except ValueError as exc:
        raise ConstructionError(str(exc)) from exc
    return source


def draw(distribution: Distribution, rng: RandomSource) -> None:
    """Normalize *distribution* and select one entry in proportion to its probability."""
    distribution.select(rng.sample_index(distribution.softmax()))


@StageRegistry.register("softmax")
class SoftmaxStage(Stage):
    """Normalizes the distribution in place. Idempotent."""

    @property
    def name(self) -> str:
        """Return ``'softmax'``."""
        return "softmax"

    def apply(self, distribution: Distribution) -> None:
        distribution.softmax()


@StageRegistry.register("greedy")
class GreedyStage(Stage):
    """Selects the highest-logit entry, ties broken by the lowest token id."""

    selects_token = True

    @property
    def name(self) -> str:
        """Return ``'greedy'``."""
        return "greedy"

    def apply(self, distribution: Distribution) -> None:
        distribution.select(argmax_position(distribution))


@StageRegistry.register("dist")
class DistStage(Stage):
    """Draws one entry with probability proportional to its softmax value.

    Args:
        seed: Seed for the private generator; :data:`DEFAULT_SEED` or
            ``None`` picks a random one.
        rng: Pre-built random source, overriding *seed*.
    """

    selects_token = True

    def __init__(self, seed: int | None = DEFAULT_SEED, rng: RandomSource | None = None) -> None:
        self._rng = make_random_source(self, seed, rng)

    @property
    def name(self) -> str:
        """Return ``'dist'``."""
        return "dist"

    @property
    def rng(self) -> RandomSource:
        return self._rng

    def apply(self, distribution: Distribution) -> None:
        draw(distribution, self._rng)

    def reset(self) -> None:
        self._rng.reset()

    def checkpoint(self) -> Any:
        return self._rng.get_state()

    def rollback(self, state: Any) -> None:
        self._rng.set_state(state)

    def describe(self) -> str:
        return f"dist {self._rng.name}"
