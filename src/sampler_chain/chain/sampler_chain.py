"""The sampler chain: an ordered, owned sequence of stages.

Each call to :meth:`SamplerChain.sample` runs every stage once, in order,
over a fresh distribution and returns the token chosen by the terminal
stage::

    chain = build_chain([{"type": "top_k", "k": 40}, {"type": "dist", "seed": 7}])
    token = chain.sample(logits)
    chain.accept(token)

History (penalty windows, mirostat ``mu``) changes only in :meth:`accept`.
A step that fails restores every stage to its state before the call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING

import numpy as np

from sampler_chain.chain.params import ChainParams
from sampler_chain.chain.types import SamplerTimings
from sampler_chain.distribution import Distribution
from sampler_chain.exceptions import (
    ChainClosedError,
    ConstructionError,
    EmptyDistributionError,
    InvalidTokenError,
    SamplerChainError,
)
from sampler_chain.logging.types import StepRecord
from sampler_chain.stages.base import Stage

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from sampler_chain.logging.logger import SamplingLogger

logger = logging.getLogger("sampler_chain")


def _common_vocab_size(stages: Sequence[Stage]) -> int | None:
    sizes = {stage.n_vocab for stage in stages if stage.n_vocab is not None}
    if len(sizes) > 1:
        raise ConstructionError(f"Stages disagree on vocabulary size: {sorted(sizes)}")
    return sizes.pop() if sizes else None


class SamplerChain:
    """Ordered sequence of stages that turns scores into one token.

    The chain owns its stages: :meth:`close` releases them exactly once, and
    any later call raises :class:`ChainClosedError`. Chains are context
    managers.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        params: ChainParams | None = None,
        sampling_logger: SamplingLogger | None = None,
    ) -> None:
        """Validate and take ownership of *stages*.

        Args:
            stages: Stages in application order; the last must select a token.
            params: Chain parameters; defaults to ``ChainParams()``.
            sampling_logger: Optional per-step diagnostic logger.

        Raises:
            ConstructionError: If the chain is empty, contains a non-stage,
                repeats a stage or takes one owned by another chain, does
                not end in a token-selecting stage, or its stages disagree
                on the vocabulary size.
        """
        stages = tuple(stages)
        if not stages:
            raise ConstructionError("A sampler chain needs at least one stage")
        seen: set[int] = set()
        for stage in stages:
            if not isinstance(stage, Stage):
                raise ConstructionError(f"Not a stage: {stage!r}")
            if id(stage) in seen:
                raise ConstructionError(
                    f"Stage '{stage.name}' appears more than once in the chain"
                )
            if stage.owner is not None:
                raise ConstructionError(f"Stage '{stage.name}' already belongs to another chain")
            seen.add(id(stage))
        if not stages[-1].selects_token:
            raise ConstructionError(
                f"The last stage must select a token, got '{stages[-1].name}'"
            )

        self._stages: tuple[Stage, ...] = stages
        self._n_vocab = _common_vocab_size(stages)
        for stage in stages:
            stage.claim(self)
        self._params = params if params is not None else ChainParams()
        self._sampling_logger = sampling_logger
        self._closed = False
        self._t_sample_ns = 0
        self._n_sample = 0

        logger.info(
            "SamplerChain built: %s (n_vocab=%s, no_perf=%s)",
            self.describe(),
            self._n_vocab,
            self._params.no_perf,
        )

    # --- Properties ---

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def params(self) -> ChainParams:
        return self._params

    @property
    def n_vocab(self) -> int | None:
        """Vocabulary size declared by the stages, if any declares one."""
        return self._n_vocab

    @property
    def sampling_logger(self) -> SamplingLogger | None:
        return self._sampling_logger

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"SamplerChain({self.describe()!r}, {state})"

    def describe(self) -> str:
        """Stage descriptions joined in application order."""
        return " -> ".join(stage.describe() for stage in self._stages)

    # --- Sampling ---

    def sample(self, scores: ArrayLike | Distribution) -> int:
        """Run every stage once and return the selected token id.

        Args:
            scores: Vocabulary-sized 1-D logits indexed by token id, or a
                prepared :class:`Distribution` that is transformed in place.

        Returns:
            The token id chosen by the terminal stage.

        Raises:
            ChainClosedError: If the chain has been closed.
            ValueError: If *scores* does not match the chain's vocabulary size.
            EmptyDistributionError: If there are no candidates.
            NumericError: If any stage produces NaN or ``+inf`` values.
        """
        self._ensure_open()
        distribution = self._prepare(scores)
        if len(distribution) == 0:
            raise EmptyDistributionError("Cannot sample from an empty distribution")

        t_start_ns = time.perf_counter_ns()
        states = [stage.checkpoint() for stage in self._stages]
        try:
            distribution.check_finite()
            for stage in self._stages:
                stage.apply(distribution)
                distribution.check_finite()
            token = distribution.selected_token
            if token is None:
                raise SamplerChainError("No stage selected a token")
        except Exception as exc:
            for stage, state in zip(reversed(self._stages), reversed(states)):
                stage.rollback(state)
            logger.warning("Sampling step failed, chain rolled back: %s", exc)
            raise
        elapsed_ns = time.perf_counter_ns() - t_start_ns

        if not self._params.no_perf:
            self._t_sample_ns += elapsed_ns
            self._n_sample += 1

        if self._sampling_logger is not None:
            self._sampling_logger.log_step(
                StepRecord(
                    timestamp_ns=t_start_ns,
                    total_sampling_ms=elapsed_ns / 1_000_000.0,
                    token_id=token,
                    token_prob=distribution.probability_of(token),
                    num_candidates=len(distribution),
                    chain=self.describe(),
                )
            )
        return token

    def _prepare(self, scores: ArrayLike | Distribution) -> Distribution:
        if isinstance(scores, Distribution):
            return scores
        arr = np.asarray(scores, dtype=np.float64)
        if arr.ndim != 1:
            raise ValueError(f"scores must be 1-D, got shape {arr.shape}")
        if self._n_vocab is not None and arr.shape[0] != self._n_vocab:
            raise ValueError(
                f"scores have {arr.shape[0]} entries, chain vocabulary is {self._n_vocab}"
            )
        return Distribution.from_logits(arr)

    # --- History ---

    def accept(self, token_id: int) -> None:
        """Tell every stage that *token_id* was emitted.

        May be called before any :meth:`sample` to prime history with a
        prompt.

        Raises:
            ChainClosedError: If the chain has been closed.
            InvalidTokenError: If *token_id* is negative or outside the
                chain's vocabulary.
        """
        self._ensure_open()
        if isinstance(token_id, bool) or not isinstance(token_id, (int, np.integer)):
            raise InvalidTokenError(f"token id must be an integer, got {token_id!r}")
        token_id = int(token_id)
        if token_id < 0 or (self._n_vocab is not None and token_id >= self._n_vocab):
            raise InvalidTokenError(
                f"token {token_id} is outside the vocabulary of {self._n_vocab}"
            )
        for stage in self._stages:
            stage.accept(token_id)

    def reset(self) -> None:
        """Clear all history and reseed every random stage.

        Parameters and stage order are unchanged.
        """
        self._ensure_open()
        for stage in self._stages:
            stage.reset()
        logger.debug("SamplerChain reset: %s", self.describe())

    # --- Performance counters ---

    def timings(self) -> SamplerTimings:
        """Snapshot of the accumulated timing counters."""
        self._ensure_open()
        return SamplerTimings(t_sample_ms=self._t_sample_ns / 1_000_000.0, n_sample=self._n_sample)

    def reset_timings(self) -> None:
        """Zero the timing counters."""
        self._ensure_open()
        self._t_sample_ns = 0
        self._n_sample = 0

    # --- Lifecycle ---

    def close(self) -> None:
        """Release all stages. Calling ``close()`` again has no effect."""
        if self._closed:
            return
        self._closed = True
        for stage in self._stages:
            stage.close()
        logger.debug("SamplerChain closed: %s", self.describe())

    def _ensure_open(self) -> None:
        if self._closed:
            raise ChainClosedError("SamplerChain has been closed")

    def __enter__(self) -> SamplerChain:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

