"""Temperature stages.

``temp`` divides every logit by a constant. ``temp_ext`` derives the
temperature from the normalized Shannon entropy of the current candidates:
peaked distributions get a temperature near ``temp - delta``, flat ones near
``temp + delta``.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from sampler_chain.exceptions import ConstructionError
from sampler_chain.stages.base import Stage, argmax_position, require_finite
from sampler_chain.stages.registry import StageRegistry

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution

logger = logging.getLogger("sampler_chain")


def apply_temperature(distribution: Distribution, temp: float) -> None:
    """Divide the logits of *distribution* by *temp*.

    A non-positive temperature collapses the set to its maximum-logit entry
    instead of dividing by zero.

    Raises:
        NumericError: If the scaled logits overflow to ``+inf``.
    """
    if temp == 1.0 or len(distribution) == 0:
        return
    if temp <= 0.0:
        distribution.take([argmax_position(distribution)], is_sorted=True)
        return
    with np.errstate(over="ignore"):
        scaled = distribution.logits / temp
    distribution.update_logits(scaled, preserves_order=True)
    distribution.check_finite()


@StageRegistry.register("temp")
class TemperatureStage(Stage):
    """Scales logits by ``1 / temp``.

    ``temp < 1`` sharpens the distribution, ``temp > 1`` flattens it and
    ``temp <= 0`` keeps only the most likely token.
    """

    def __init__(self, temp: float) -> None:
        self._temp = require_finite("temp", temp)

    @property
    def name(self) -> str:
        """Return ``'temp'``."""
        return "temp"

    @property
    def temp(self) -> float:
        return self._temp

    def apply(self, distribution: Distribution) -> None:
        apply_temperature(distribution, self._temp)

    def describe(self) -> str:
        return f"temp {self._temp:.2f}"


@StageRegistry.register("temp_ext")
class DynamicTemperatureStage(Stage):
    """Entropy-based dynamic temperature.

    Formula::

        H_norm = H / ln(n)                       # n = number of candidates
        lo, hi = max(0, temp - delta), temp + delta
        T = lo + (hi - lo) * H_norm ^ exponent

    Behaviour:
        - Low entropy (peaked) -> T near ``lo`` -> sharper sampling
        - High entropy (flat) -> T near ``hi`` -> more exploration
        - ``exponent < 1`` (concave): T rises quickly with entropy
        - ``exponent > 1`` (convex): T rises slowly with entropy

    With ``delta <= 0`` the stage behaves exactly like ``temp``.
    """

    def __init__(self, temp: float, delta: float, exponent: float) -> None:
        """Initialize with the base temperature and its entropy-driven range.

        Args:
            temp: Centre of the temperature range.
            delta: Half-width of the range; ``<= 0`` disables the dynamic part.
            exponent: Power-law exponent mapping entropy to temperature.

        Raises:
            ConstructionError: If a parameter is not finite or the exponent
                is negative.
        """
        self._temp = require_finite("temp", temp)
        self._delta = require_finite("delta", delta)
        self._exponent = require_finite("exponent", exponent)
        if self._exponent < 0.0:
            raise ConstructionError(f"exponent must be >= 0, got {exponent!r}")

    @property
    def name(self) -> str:
        """Return ``'temp_ext'``."""
        return "temp_ext"

    def compute_temperature(self, distribution: Distribution) -> float:
        """Return the effective temperature for *distribution*.

        Normalizes the distribution as a side effect when ``delta > 0``.
        """
        if self._delta <= 0.0 or len(distribution) <= 1:
            return self._temp

        min_temp = max(0.0, self._temp - self._delta)
        max_temp = self._temp + self._delta

        h = distribution.entropy()
        h_norm = h / math.log(len(distribution))
        temp = min_temp + (max_temp - min_temp) * (h_norm**self._exponent)

        logger.debug(
            "dynamic temperature: entropy=%.4f h_norm=%.4f temp=%.4f",
            h,
            h_norm,
            temp,
        )
        return temp

    def apply(self, distribution: Distribution) -> None:
        if self._delta > 0.0 and len(distribution) <= 1:
            return
        apply_temperature(distribution, self.compute_temperature(distribution))

    def describe(self) -> str:
        return f"temp {self._temp:.2f} +/- {abs(self._delta):.2f}"
