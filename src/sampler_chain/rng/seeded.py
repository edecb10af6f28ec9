"""Seeded pseudo-random source backed by numpy's ``Generator``.

Seeds equal to :data:`DEFAULT_SEED` (or ``None``) request a fresh random seed
drawn from the OS; every other value gives a reproducible stream.
"""

from __future__ import annotations

import os
import sys
from typing import Any

import numpy as np

from sampler_chain.rng.base import RandomSource

DEFAULT_SEED: int = 0xFFFFFFFF
"""Sentinel seed meaning "pick a random seed"."""


def resolve_seed(seed: int | None) -> int:
    """Return *seed* unchanged, or a random unsigned 32-bit seed for the sentinel.

    Args:
        seed: Requested seed, ``None`` or :data:`DEFAULT_SEED` for random.

    Returns:
        A concrete non-negative seed.
    """
    if seed is None or seed == DEFAULT_SEED:
        return int.from_bytes(os.urandom(4), byteorder=sys.byteorder, signed=False)
    return seed


class SeededRandomSource(RandomSource):
    """Stage-private generator with reproducible output for fixed seeds.

    ``reset()`` reseeds: a fixed seed replays the same stream, while the
    random-seed sentinel draws a new seed, as a fresh chain would.

    Args:
        seed: Non-negative seed, or ``None`` / :data:`DEFAULT_SEED` for random.

    Raises:
        ValueError: If *seed* is negative.
    """

    def __init__(self, seed: int | None = DEFAULT_SEED) -> None:
        if seed is not None and seed < 0:
            raise ValueError(f"seed must be non-negative, got {seed}")
        self._requested_seed = seed
        self._seed = resolve_seed(seed)
        self._rng = np.random.default_rng(self._seed)

    @property
    def name(self) -> str:
        """Return ``'seeded'``."""
        return "seeded"

    @property
    def seed(self) -> int:
        """The concrete seed currently in use."""
        return self._seed

    def uniform(self) -> float:
        """Return one float uniformly distributed on [0, 1)."""
        return float(self._rng.random())

    def get_state(self) -> Any:
        """Capture the bit generator state."""
        return self._rng.bit_generator.state

    def set_state(self, state: Any) -> None:
        """Restore a bit generator state captured by :meth:`get_state`."""
        self._rng.bit_generator.state = state

    def reset(self) -> None:
        """Reseed from the requested seed."""
        self._seed = resolve_seed(self._requested_seed)
        self._rng = np.random.default_rng(self._seed)
