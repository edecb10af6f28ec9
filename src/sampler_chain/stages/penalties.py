"""Repetition, frequency and presence penalties over a sliding token window.

The stage remembers the last ``penalty_last_n`` accepted tokens in a ring
buffer together with a per-token occurrence count. History only changes in
:meth:`RepetitionPenaltiesStage.accept`; :meth:`apply` reads it.
"""

from __future__ import annotations

from collections import Counter, deque
from typing import TYPE_CHECKING

import numpy as np

from sampler_chain.exceptions import ConstructionError, InvalidTokenError
from sampler_chain.stages.base import Stage, require_finite, require_int
from sampler_chain.stages.registry import StageRegistry

if TYPE_CHECKING:
    from sampler_chain.distribution import Distribution

# Token id meaning "the tokenizer has no such token".
NO_TOKEN = -1


@StageRegistry.register("penalties")
class RepetitionPenaltiesStage(Stage):
    """Penalizes candidates that occur in the recent token window.

    For every candidate seen ``c > 0`` times in the window::

        logit = logit * repeat_penalty   if logit <= 0
        logit = logit / repeat_penalty   otherwise
        logit -= c * freq_penalty + presence_penalty

    The newline token is left alone unless ``penalize_nl`` is set, and the
    end-of-sequence token is left alone when ``ignore_eos`` is set.
    """

    def __init__(
        self,
        n_vocab: int,
        eos_id: int,
        newline_id: int,
        penalty_last_n: int,
        repeat_penalty: float = 1.0,
        freq_penalty: float = 0.0,
        presence_penalty: float = 0.0,
        penalize_nl: bool = False,
        ignore_eos: bool = False,
    ) -> None:
        """Initialize the penalty parameters and an empty window.

        Args:
            n_vocab: Vocabulary size of the model.
            eos_id: End-of-sequence token id, or ``-1`` if there is none.
            newline_id: Newline token id, or ``-1`` if there is none.
            penalty_last_n: Window length; ``0`` disables the stage.
            repeat_penalty: Multiplicative penalty; ``1.0`` is neutral.
            freq_penalty: Subtracted once per occurrence; ``0.0`` is neutral.
            presence_penalty: Subtracted once if present; ``0.0`` is neutral.
            penalize_nl: Whether the newline token may be penalized.
            ignore_eos: Whether the end-of-sequence token is exempt.

        Raises:
            ConstructionError: If any parameter is out of range.
        """
        self._n_vocab = require_int("n_vocab", n_vocab, minimum=1)
        self._eos_id = self._require_special("eos_id", eos_id)
        self._newline_id = self._require_special("newline_id", newline_id)
        self._penalty_last_n = require_int("penalty_last_n", penalty_last_n, minimum=0)
        self._repeat_penalty = require_finite("repeat_penalty", repeat_penalty)
        if self._repeat_penalty <= 0.0:
            raise ConstructionError(f"repeat_penalty must be > 0, got {repeat_penalty!r}")
        self._freq_penalty = require_finite("freq_penalty", freq_penalty)
        self._presence_penalty = require_finite("presence_penalty", presence_penalty)
        self._penalize_nl = bool(penalize_nl)
        self._ignore_eos = bool(ignore_eos)

        self._window: deque[int] = deque(maxlen=self._penalty_last_n)
        self._counts: Counter[int] = Counter()

    def _require_special(self, name: str, token_id: int) -> int:
        token = require_int(name, token_id, minimum=NO_TOKEN)
        if token >= self._n_vocab:
            raise ConstructionError(f"{name} {token} is outside the vocabulary of {self._n_vocab}")
        return token

    @property
    def name(self) -> str:
        """Return ``'penalties'``."""
        return "penalties"

    @property
    def n_vocab(self) -> int:
        return self._n_vocab

    @property
    def history(self) -> tuple[int, ...]:
        """Tokens currently in the window, oldest first."""
        return tuple(self._window)

    def token_count(self, token_id: int) -> int:
        """Occurrences of *token_id* within the current window."""
        return self._counts.get(token_id, 0)

    @property
    def is_neutral(self) -> bool:
        """True when applying the stage cannot change any logit."""
        return self._penalty_last_n == 0 or (
            self._repeat_penalty == 1.0
            and self._freq_penalty == 0.0
            and self._presence_penalty == 0.0
        )

    def accept(self, token_id: int) -> None:
        """Push *token_id* into the window, evicting the oldest when full.

        Raises:
            InvalidTokenError: If *token_id* is outside the vocabulary.
        """
        if not 0 <= token_id < self._n_vocab:
            raise InvalidTokenError(
                f"token {token_id} is outside the vocabulary of {self._n_vocab}"
            )
        if self._penalty_last_n == 0:
            return
        if len(self._window) == self._penalty_last_n:
            evicted = self._window[0]
            self._counts[evicted] -= 1
            if self._counts[evicted] == 0:
                del self._counts[evicted]
        self._window.append(token_id)
        self._counts[token_id] += 1

    def reset(self) -> None:
        self._window.clear()
        self._counts.clear()

    def apply(self, distribution: Distribution) -> None:
        if self.is_neutral or not self._counts or len(distribution) == 0:
            return

        exempt = set()
        if not self._penalize_nl and self._newline_id != NO_TOKEN:
            exempt.add(self._newline_id)
        if self._ignore_eos and self._eos_id != NO_TOKEN:
            exempt.add(self._eos_id)

        penalized = [tok for tok in self._counts if tok not in exempt]
        if not penalized:
            return
        tokens = np.array(penalized, dtype=np.int64)
        counts = np.array([self._counts[tok] for tok in penalized], dtype=np.float64)

        # Locate window tokens among the candidates; earlier stages may have
        # reordered or dropped entries.
        ids = distribution.ids
        order = np.argsort(ids)
        slots = np.clip(np.searchsorted(ids, tokens, sorter=order), 0, len(ids) - 1)
        found = ids[order[slots]] == tokens
        if not np.any(found):
            return
        positions = order[slots[found]]
        counts = counts[found]

        logits = np.array(distribution.logits)
        current = logits[positions]
        current = np.where(
            current <= 0.0,
            current * self._repeat_penalty,
            current / self._repeat_penalty,
        )
        logits[positions] = current - (counts * self._freq_penalty + self._presence_penalty)
        distribution.update_logits(logits)

    def describe(self) -> str:
        return (
            f"penalties last_n:{self._penalty_last_n} repeat:{self._repeat_penalty:.2f} "
            f"freq:{self._freq_penalty:.2f} present:{self._presence_penalty:.2f}"
        )
