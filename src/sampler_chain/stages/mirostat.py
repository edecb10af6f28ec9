"""Mirostat: entropy-targeted sampling with a feedback-controlled threshold.

Both versions keep a running surprise bound ``mu`` (initially ``2 * tau``),
truncate the candidates with it, and draw from the survivors. When the
caller accepts a token, ``mu`` moves toward the target surprise::

    surprise = -log2 P(accepted)       # under the last truncated distribution
    mu      += eta * (tau - surprise)

Reference: "Mirostat: A Neural Text Decoding Algorithm that Directly
Controls Perplexity" (https://arxiv.org/abs/2007.14966)
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import numpy as np

from sampler_chain.exceptions import ConstructionError
from sampler_chain.rng import DEFAULT_SEED
from sampler_chain.stages.base import Stage, require_finite, require_int
from sampler_chain.stages.registry import StageRegistry
from sampler_chain.stages.selection import draw, make_random_source

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution
    from sampler_chain.rng import RandomSource

logger = logging.getLogger("sampler_chain")


class _MirostatBase(Stage):
    """Shared ``mu`` bookkeeping for both Mirostat versions."""

    selects_token = True

    def __init__(self, seed: int | None, tau: float, eta: float, rng: RandomSource | None) -> None:
        self._tau = require_finite("tau", tau)
        self._eta = require_finite("eta", eta)
        if self._tau < 0.0:
            raise ConstructionError(f"tau must be >= 0, got {tau!r}")
        if self._eta < 0.0:
            raise ConstructionError(f"eta must be >= 0, got {eta!r}")
        self._rng = make_random_source(self, seed, rng)
        self._mu = 2.0 * self._tau
        # Truncated, normalized distribution of the most recent draw.
        self._last: Distribution | None = None

    @property
    def tau(self) -> float:
        return self._tau

    @property
    def eta(self) -> float:
        return self._eta

    @property
    def mu(self) -> float:
        """Current surprise bound."""
        return self._mu

    @property
    def rng(self) -> RandomSource:
        return self._rng

    def _draw(self, distribution: Distribution) -> None:
        draw(distribution, self._rng)
        self._last = distribution.copy()

    def accept(self, token_id: int) -> None:
        """Update ``mu`` from the surprise of *token_id* in the last draw.

        Skipped when nothing has been drawn since the previous accept, or the
        token was not among the candidates of the last draw.
        """
        last, self._last = self._last, None
        if last is None:
            return
        prob = last.probability_of(token_id)
        if prob is None or prob <= 0.0:
            logger.debug("mirostat: token %d absent from last draw, mu unchanged", token_id)
            return
        surprise = -math.log2(prob)
        self._mu += self._eta * (self._tau - surprise)

    def reset(self) -> None:
        self._mu = 2.0 * self._tau
        self._last = None
        self._rng.reset()

    def checkpoint(self) -> Any:
        return (self._rng.get_state(), self._last)

    def rollback(self, state: Any) -> None:
        rng_state, self._last = state
        self._rng.set_state(rng_state)


@StageRegistry.register("mirostat")
class MirostatStage(_MirostatBase):
    """Mirostat version 1.

    Estimates the Zipf exponent ``s_hat`` of the sorted probabilities from the
    ``m`` most likely tokens, derives the top-k size that would give an
    expected surprise of ``mu``::

        eps = s_hat - 1
        k   = (eps * 2^mu / (1 - n_vocab^-eps)) ^ (1 / s_hat)

    and draws from the top ``max(int(k), 1)`` candidates.
    """

    def __init__(
        self,
        n_vocab: int,
        seed: int | None = DEFAULT_SEED,
        tau: float = 5.0,
        eta: float = 0.1,
        m: int = 100,
        rng: RandomSource | None = None,
    ) -> None:
        self._n_vocab = require_int("n_vocab", n_vocab, minimum=1)
        self._m = require_int("m", m, minimum=1)
        super().__init__(seed, tau, eta, rng)

    @property
    def name(self) -> str:
        """Return ``'mirostat'``."""
        return "mirostat"

    @property
    def n_vocab(self) -> int:
        return self._n_vocab

    def estimate_s_hat(self, probs: np.ndarray) -> float:
        """Least-squares Zipf exponent over the top ``m`` sorted probabilities."""
        count = min(self._m - 1, probs.shape[0] - 1)
        if count <= 0:
            return math.nan
        i = np.arange(count, dtype=np.float64)
        t = np.log((i + 2.0) / (i + 1.0))
        with np.errstate(divide="ignore", invalid="ignore"):
            b = np.log(probs[:count] / probs[1 : count + 1])
        valid = np.isfinite(b)
        if not np.any(valid):
            return math.nan
        return float(np.sum(t[valid] * b[valid]) / np.sum(t[valid] * t[valid]))

    def compute_k(self, s_hat: float, size: int) -> int:
        """Number of candidates to keep for exponent *s_hat* and the current ``mu``."""
        if math.isnan(s_hat):
            return 1
        eps = s_hat - 1.0
        with np.errstate(all="ignore"):
            scale = np.power(2.0, self._mu)
            if abs(eps) < 1e-9 or self._n_vocab == 1:
                # eps / (1 - N^-eps) -> 1 / ln N as eps -> 0
                ratio = 1.0 / math.log(self._n_vocab) if self._n_vocab > 1 else 1.0
            else:
                ratio = eps / (1.0 - np.power(np.float64(self._n_vocab), -eps))
            # A flat head (s_hat == 0) gives an infinite exponent.
            k = np.power(ratio * scale, np.float64(1.0) / np.float64(s_hat))
        if np.isnan(k):
            return 1
        if np.isinf(k) or k >= size:
            return size
        return max(int(k), 1)

    def apply(self, distribution: Distribution) -> None:
        distribution.sort_descending()
        probs = distribution.softmax()
        k = self.compute_k(self.estimate_s_hat(probs), len(distribution))
        logger.debug("mirostat v1: mu=%.4f k=%d", self._mu, k)
        distribution.keep_prefix(k)
        self._draw(distribution)

    def describe(self) -> str:
        return f"mirostat v1 tau:{self._tau:.2f} eta:{self._eta:.2f}"


@StageRegistry.register("mirostat_v2")
class MirostatV2Stage(_MirostatBase):
    """Mirostat version 2.

    Drops every candidate whose surprise ``-log2 p`` exceeds ``mu`` (always
    keeping the most likely one) and draws from the rest.
    """

    def __init__(
        self,
        seed: int | None = DEFAULT_SEED,
        tau: float = 5.0,
        eta: float = 0.1,
        rng: RandomSource | None = None,
    ) -> None:
        super().__init__(seed, tau, eta, rng)

    @property
    def name(self) -> str:
        """Return ``'mirostat_v2'``."""
        return "mirostat_v2"

    def apply(self, distribution: Distribution) -> None:
        distribution.sort_descending()
        probs = distribution.softmax()
        with np.errstate(divide="ignore"):
            surprise = -np.log2(probs)
        too_surprising = np.flatnonzero(surprise > self._mu)
        keep = int(too_surprising[0]) if too_surprising.size else len(distribution)
        distribution.keep_prefix(keep)
        self._draw(distribution)

    def describe(self) -> str:
        return f"mirostat v2 tau:{self._tau:.2f} eta:{self._eta:.2f}"
