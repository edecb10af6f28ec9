"""Random sources for stages that draw tokens.

Each stage owns its own source so that stages never interfere with one
another and every stage is reproducible from its seed::

    from sampler_chain.rng import RandomSource, SeededRandomSource
"""

from sampler_chain.rng.base import RandomSource
from sampler_chain.rng.seeded import DEFAULT_SEED, SeededRandomSource, resolve_seed

__all__ = [
    "DEFAULT_SEED",
    "RandomSource",
    "SeededRandomSource",
    "resolve_seed",
]
