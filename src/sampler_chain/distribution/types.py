"""Data types for the candidate distribution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ValueDomain(str, Enum):
    """Which domain the candidate values currently live in."""

    LOGIT = "logit"
    PROBABILITY = "probability"


@dataclass(frozen=True, slots=True)
class TokenScore:
    """One candidate of a sampling step.

    Attributes:
        token_id: Index into the model vocabulary.
        value: Logit or probability, depending on ``domain``.
        domain: Domain of ``value`` at the time the record was taken.
    """

    token_id: int
    value: float
    domain: ValueDomain
