"""Mutable candidate set for a single sampling step.

A :class:`Distribution` holds parallel arrays of token ids and logits, plus
the normalized probabilities once :meth:`Distribution.softmax` has run.
Stages mutate it in place; the terminal stage marks one entry as selected.

Domain rule: the distribution is in the probability domain only while
``probs`` is a normalized distribution over exactly the current entries.
Changing logits or dropping entries returns it to the logit domain, so the
next ``softmax()`` renormalizes over the survivors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from sampler_chain.distribution.types import TokenScore, ValueDomain
from sampler_chain.exceptions import EmptyDistributionError, NumericError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import ArrayLike


def _readonly(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


class Distribution:
    """Working set of ``(token id, score)`` pairs for one sampling step.

    Token ids are unique. Entries are ordered; ``is_sorted`` records whether
    that order is descending by value (ties by ascending token id).
    """

    __slots__ = ("_ids", "_is_sorted", "_logits", "_probs", "_selected")

    def __init__(self, ids: ArrayLike, logits: ArrayLike, *, is_sorted: bool = False) -> None:
        """Build a distribution from explicit ids and logits.

        Args:
            ids: 1-D array of unique token ids.
            logits: 1-D array of logits, same length as ``ids``.
            is_sorted: Whether the entries are already in descending order.

        Raises:
            ValueError: If the arrays are not 1-D, differ in length, or
                ``ids`` contains duplicates.
        """
        ids_arr = np.asarray(ids, dtype=np.int64)
        logits_arr = np.array(logits, dtype=np.float64)
        if ids_arr.ndim != 1 or logits_arr.ndim != 1:
            raise ValueError("ids and logits must be 1-D")
        if ids_arr.shape != logits_arr.shape:
            raise ValueError(
                f"ids and logits differ in length: {ids_arr.shape[0]} != {logits_arr.shape[0]}"
            )
        if len(np.unique(ids_arr)) != len(ids_arr):
            raise ValueError("token ids within a distribution must be unique")
        self._ids = ids_arr
        self._logits = logits_arr
        self._probs: np.ndarray | None = None
        self._is_sorted = is_sorted
        self._selected: int | None = None

    @classmethod
    def from_logits(cls, scores: ArrayLike) -> Distribution:
        """Build an unsorted logit-domain distribution, one entry per vocabulary id.

        Args:
            scores: 1-D array of raw logits indexed by token id.

        Returns:
            A new Distribution whose token ids equal their array index.
        """
        logits = np.array(scores, dtype=np.float64)
        if logits.ndim != 1:
            raise ValueError(f"scores must be 1-D, got shape {logits.shape}")
        return cls(np.arange(logits.shape[0], dtype=np.int64), logits)

    # --- Accessors ---

    def __len__(self) -> int:
        return int(self._ids.shape[0])

    def __iter__(self) -> Iterator[TokenScore]:
        return iter(self.entries())

    def __repr__(self) -> str:
        return (
            f"Distribution(size={len(self)}, domain={self.domain.value}, "
            f"is_sorted={self._is_sorted}, selected={self._selected})"
        )

    @property
    def ids(self) -> np.ndarray:
        """Token ids in entry order (read-only view)."""
        return _readonly(self._ids)

    @property
    def logits(self) -> np.ndarray:
        """Logits in entry order (read-only view)."""
        return _readonly(self._logits)

    @property
    def probs(self) -> np.ndarray | None:
        """Normalized probabilities, or ``None`` in the logit domain."""
        if self._probs is None:
            return None
        return _readonly(self._probs)

    @property
    def domain(self) -> ValueDomain:
        """Domain the values currently live in."""
        return ValueDomain.LOGIT if self._probs is None else ValueDomain.PROBABILITY

    @property
    def values(self) -> np.ndarray:
        """Values in the current domain (probabilities once normalized)."""
        return self.logits if self._probs is None else self.probs  # type: ignore[return-value]

    @property
    def is_sorted(self) -> bool:
        """Whether entries are ordered by value descending."""
        return self._is_sorted

    @property
    def selected(self) -> int | None:
        """Position of the entry chosen by a terminal stage, if any."""
        return self._selected

    @property
    def selected_token(self) -> int | None:
        """Token id of the selected entry, if any."""
        if self._selected is None:
            return None
        return int(self._ids[self._selected])

    def entries(self) -> list[TokenScore]:
        """Return the entries as immutable TokenScore records."""
        domain = self.domain
        values = self.values
        return [
            TokenScore(token_id=int(tid), value=float(v), domain=domain)
            for tid, v in zip(self._ids, values)
        ]

    def probability_of(self, token_id: int) -> float | None:
        """Probability of *token_id* in the normalized distribution.

        Returns:
            The probability, or ``None`` if the distribution is not
            normalized or does not contain the token.
        """
        if self._probs is None:
            return None
        hits = np.flatnonzero(self._ids == token_id)
        if hits.size == 0:
            return None
        return float(self._probs[hits[0]])

    def copy(self) -> Distribution:
        """Return an independent copy, including domain and selection."""
        clone = Distribution(self._ids.copy(), self._logits.copy(), is_sorted=self._is_sorted)
        clone._probs = None if self._probs is None else self._probs.copy()
        clone._selected = self._selected
        return clone

    # --- Transformations ---

    def softmax(self) -> np.ndarray:
        """Convert logits to normalized probabilities in place.

        Uses the shift-by-max trick for numerical stability. Entries with a
        ``-inf`` logit receive probability zero. No-op when already normalized.

        Returns:
            The normalized probabilities (read-only view), in entry order.

        Raises:
            EmptyDistributionError: If there are no entries.
            NumericError: If a logit is NaN or ``+inf``, or every logit is ``-inf``.
        """
        if len(self) == 0:
            raise EmptyDistributionError("Cannot normalize an empty distribution")
        if self._probs is not None:
            return _readonly(self._probs)
        self.check_finite()

        finite_mask = np.isfinite(self._logits)
        if not np.any(finite_mask):
            raise NumericError("Every logit is -inf; the distribution has no mass")

        # exp(-inf - max) = 0, and the maximum entry contributes exp(0) = 1,
        # so the sum is always >= 1.
        shifted = self._logits - np.max(self._logits[finite_mask])
        exp_shifted = np.exp(shifted)
        self._probs = exp_shifted / np.sum(exp_shifted)
        return _readonly(self._probs)

    def sort_descending(self) -> None:
        """Order entries by value descending, ties broken by ascending token id."""
        if self._is_sorted or len(self) < 2:
            self._is_sorted = True
            return
        order = self._descending_order()
        self.take(order, is_sorted=True)

    def update_logits(self, logits: ArrayLike, *, preserves_order: bool = False) -> None:
        """Replace the logits, returning the distribution to the logit domain.

        Args:
            logits: New logits, same length and entry order as the current ones.
            preserves_order: True if the transform is monotone (e.g. division
                by a positive temperature), so a sorted set stays sorted.
        """
        new_logits = np.array(logits, dtype=np.float64)
        if new_logits.shape != self._logits.shape:
            raise ValueError(
                f"logit update has shape {new_logits.shape}, expected {self._logits.shape}"
            )
        self._logits = new_logits
        self._probs = None
        self._selected = None
        self._is_sorted = self._is_sorted and preserves_order

    def take(self, positions: ArrayLike, *, is_sorted: bool = False) -> None:
        """Keep only the entries at *positions*, in that order.

        A pure permutation keeps the distribution normalized; dropping any
        entry returns it to the logit domain.

        Args:
            positions: Entry positions to keep.
            is_sorted: Whether the resulting order is descending by value.
        """
        pos = np.asarray(positions, dtype=np.int64)
        keeps_all = pos.shape[0] == len(self)
        self._ids = self._ids[pos]
        self._logits = self._logits[pos]
        if self._probs is not None:
            self._probs = self._probs[pos] if keeps_all else None
        self._is_sorted = is_sorted
        self._selected = None

    def truncate(self, min_keep: int, keep_mask: ArrayLike) -> None:
        """Keep entries where *keep_mask* is true, never going below *min_keep*.

        If fewer than ``min_keep`` entries would survive, the top ``min_keep``
        entries by value are kept instead. If fewer than ``min_keep`` entries
        exist, all of them are kept.

        Args:
            min_keep: Floor on the number of retained entries.
            keep_mask: Boolean array aligned with the current entries.
        """
        mask = np.asarray(keep_mask, dtype=bool)
        if mask.shape != self._ids.shape:
            raise ValueError(f"keep_mask has shape {mask.shape}, expected {self._ids.shape}")
        floor = min(min_keep, len(self))
        if int(np.count_nonzero(mask)) >= floor:
            if not np.all(mask):
                self.take(np.flatnonzero(mask), is_sorted=self._is_sorted)
            return
        order = self._descending_order()
        self.take(order[:floor], is_sorted=True)

    def keep_prefix(self, n: int, min_keep: int = 1) -> None:
        """Keep the first ``max(n, min_keep)`` entries, clamped to the size.

        Args:
            n: Number of leading entries the filter wants to keep.
            min_keep: Floor on the number of retained entries.
        """
        k = min(max(n, min_keep), len(self))
        if k < len(self):
            self.take(np.arange(k), is_sorted=self._is_sorted)

    def select(self, position: int) -> None:
        """Mark the entry at *position* as the chosen token."""
        if not 0 <= position < len(self):
            raise IndexError(f"selection {position} out of range for size {len(self)}")
        self._selected = int(position)

    # --- Statistics ---

    def entropy(self) -> float:
        """Shannon entropy H = -sum(p * ln p) in nats, normalizing first if needed."""
        probs = self.softmax()
        mask = probs > 0
        entropy = -float(np.sum(probs[mask] * np.log(probs[mask])))
        # Guard against floating-point artifacts producing tiny negatives.
        return max(0.0, entropy)

    def check_finite(self) -> None:
        """Raise if any value is NaN or ``+inf``.

        ``-inf`` logits are allowed: they mark tokens the engine has banned.

        Raises:
            NumericError: If a logit or probability is NaN or ``+inf``.
        """
        if np.any(np.isnan(self._logits)) or np.any(np.isposinf(self._logits)):
            raise NumericError("Distribution contains NaN or +inf logits")
        if self._probs is not None and not np.all(np.isfinite(self._probs)):
            raise NumericError("Distribution contains non-finite probabilities")

    def _descending_order(self) -> np.ndarray:
        # lexsort uses the last key as primary: value descending, then id ascending.
        order: np.ndarray = np.lexsort((self._ids, -self.values))
        return order
