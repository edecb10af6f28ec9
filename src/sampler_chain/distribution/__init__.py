"""Candidate distribution for one sampling step.

Holds the token ids, logits and (once normalized) probabilities that the
stages of a chain transform in place.
"""

from sampler_chain.distribution.candidates import Distribution
from sampler_chain.distribution.types import TokenScore, ValueDomain

__all__ = [
    "Distribution",
    "TokenScore",
    "ValueDomain",
]
