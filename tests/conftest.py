"""Shared pytest fixtures for sampler-chain tests.

Provides reusable configuration objects, a deterministic random source, and
sample logit arrays that are used across multiple test modules.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from sampler_chain.config import SamplerChainConfig
from sampler_chain.rng import RandomSource


class FixedRandomSource(RandomSource):
    """Random source that replays a fixed list of uniform values.

    Cycles through *values*; ``reset()`` rewinds to the first one.
    """

    def __init__(self, *values: float) -> None:
        self._values = values or (0.5,)
        self._pos = 0

    @property
    def name(self) -> str:
        return "fixed"

    def uniform(self) -> float:
        value = self._values[self._pos % len(self._values)]
        self._pos += 1
        return value

    def get_state(self) -> Any:
        return self._pos

    def set_state(self, state: Any) -> None:
        self._pos = state

    def reset(self) -> None:
        self._pos = 0


@pytest.fixture
def default_config() -> SamplerChainConfig:
    """Return a SamplerChainConfig with all default values, ignoring .env files."""
    return SamplerChainConfig(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def silent_config() -> SamplerChainConfig:
    """Return a config with no logging for noise-free tests."""
    return SamplerChainConfig(_env_file=None, log_level="none")  # type: ignore[call-arg]


@pytest.fixture
def diagnostic_config() -> SamplerChainConfig:
    """Return a config with diagnostic mode and full logging enabled."""
    return SamplerChainConfig(
        _env_file=None,
        log_level="full",
        diagnostic_mode=True,  # type: ignore[call-arg]
    )


@pytest.fixture
def example_logits() -> np.ndarray:
    """Five logits whose maximum (3.0) sits at token id 3."""
    return np.array([1.0, 2.0, 0.5, 3.0, 0.1])


@pytest.fixture
def known_probs_logits() -> np.ndarray:
    """Logits whose softmax is exactly-ish [0.5, 0.3, 0.15, 0.05]."""
    return np.log(np.array([0.5, 0.3, 0.15, 0.05]))


@pytest.fixture
def sample_logits_uniform() -> np.ndarray:
    """Return logits that produce a uniform probability distribution.

    All logits are equal (zero), so softmax gives equal probability to
    every token. Vocab size = 100.
    """
    return np.zeros(100, dtype=np.float64)


@pytest.fixture
def sample_logits_peaked() -> np.ndarray:
    """Return logits with one dominant token (index 0).

    Token 0 has logit 10.0; all others have logit 0.0.
    After softmax, token 0 has about 99.55% probability.
    Vocab size = 100.
    """
    logits = np.zeros(100, dtype=np.float64)
    logits[0] = 10.0
    return logits


@pytest.fixture
def sample_logits_large_vocab() -> np.ndarray:
    """Return random logits for a larger vocabulary (32000).

    Uses a fixed RNG seed for reproducibility. Simulates a realistic
    LLM logit distribution.
    """
    rng = np.random.default_rng(seed=12345)
    return rng.standard_normal(32000).astype(np.float64)


@pytest.fixture
def fixed_source() -> type[FixedRandomSource]:
    """Return the FixedRandomSource class, for building scripted draws."""
    return FixedRandomSource
