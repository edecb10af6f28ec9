"""Builder-style construction of sampler chains.

Every ``add_*`` method returns the builder, so a chain reads in the order
its stages run::

    chain = (
        ChainBuilder()
        .add_penalties(n_vocab, eos_id, newline_id, penalty_last_n=64, repeat_penalty=1.1)
        .add_top_k(40)
        .add_top_p(0.95)
        .add_temp(0.8)
        .add_dist(seed=1234)
        .build()
    )

A builder is consumed by :meth:`ChainBuilder.build` and cannot be reused.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from sampler_chain.chain.sampler_chain import SamplerChain
from sampler_chain.chain.specs import parse_stage_spec, parse_stage_specs
from sampler_chain.exceptions import ConstructionError
from sampler_chain.rng import DEFAULT_SEED
from sampler_chain.stages import (
    DistStage,
    DynamicTemperatureStage,
    GreedyStage,
    MinPStage,
    MirostatStage,
    MirostatV2Stage,
    RepetitionPenaltiesStage,
    SoftmaxStage,
    Stage,
    StageRegistry,
    TailFreeStage,
    TemperatureStage,
    TopKStage,
    TopPStage,
    TypicalStage,
)

if TYPE_CHECKING:
    from sampler_chain.chain.params import ChainParams
    from sampler_chain.logging.logger import SamplingLogger


class ChainBuilder:
    """Collects stages in order and produces a :class:`SamplerChain` once."""

    def __init__(
        self,
        params: ChainParams | None = None,
        sampling_logger: SamplingLogger | None = None,
    ) -> None:
        self._params = params
        self._sampling_logger = sampling_logger
        self._stages: list[Stage] = []
        self._built = False

    def __len__(self) -> int:
        return len(self._stages)

    def _check_open(self) -> None:
        if self._built:
            raise ConstructionError("ChainBuilder has already been consumed by build()")

    def add(self, stage: Stage) -> ChainBuilder:
        """Append an already constructed stage.

        Raises:
            ConstructionError: If *stage* is not a Stage, was already added,
                or belongs to another chain.
        """
        self._check_open()
        if not isinstance(stage, Stage):
            raise ConstructionError(f"Not a stage: {stage!r}")
        if any(stage is added for added in self._stages):
            raise ConstructionError(f"Stage '{stage.name}' was already added")
        if stage.owner is not None:
            raise ConstructionError(f"Stage '{stage.name}' already belongs to another chain")
        self._stages.append(stage)
        return self

    def add_spec(self, spec: Any) -> ChainBuilder:
        """Append the stage described by *spec* (a stage spec model or dict)."""
        self._check_open()
        return self.add(StageRegistry.build(parse_stage_spec(spec)))

    def add_temp(self, temp: float) -> ChainBuilder:
        return self.add(TemperatureStage(temp))

    def add_temp_ext(self, temp: float, delta: float, exponent: float) -> ChainBuilder:
        return self.add(DynamicTemperatureStage(temp, delta, exponent))

    def add_top_k(self, k: int) -> ChainBuilder:
        return self.add(TopKStage(k))

    def add_top_p(self, p: float, min_keep: int = 1) -> ChainBuilder:
        return self.add(TopPStage(p, min_keep))

    def add_min_p(self, p: float, min_keep: int = 1) -> ChainBuilder:
        return self.add(MinPStage(p, min_keep))

    def add_tail_free(self, z: float, min_keep: int = 1) -> ChainBuilder:
        return self.add(TailFreeStage(z, min_keep))

    def add_typical_p(self, p: float, min_keep: int = 1) -> ChainBuilder:
        return self.add(TypicalStage(p, min_keep))

    def add_penalties(
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
    ) -> ChainBuilder:
        return self.add(
            RepetitionPenaltiesStage(
                n_vocab,
                eos_id,
                newline_id,
                penalty_last_n,
                repeat_penalty=repeat_penalty,
                freq_penalty=freq_penalty,
                presence_penalty=presence_penalty,
                penalize_nl=penalize_nl,
                ignore_eos=ignore_eos,
            )
        )

    def add_softmax(self) -> ChainBuilder:
        return self.add(SoftmaxStage())

    def add_greedy(self) -> ChainBuilder:
        return self.add(GreedyStage())

    def add_dist(self, seed: int | None = DEFAULT_SEED) -> ChainBuilder:
        return self.add(DistStage(seed))

    def add_mirostat(
        self,
        n_vocab: int,
        seed: int | None = DEFAULT_SEED,
        tau: float = 5.0,
        eta: float = 0.1,
        m: int = 100,
    ) -> ChainBuilder:
        return self.add(MirostatStage(n_vocab, seed=seed, tau=tau, eta=eta, m=m))

    def add_mirostat_v2(
        self,
        seed: int | None = DEFAULT_SEED,
        tau: float = 5.0,
        eta: float = 0.1,
    ) -> ChainBuilder:
        return self.add(MirostatV2Stage(seed=seed, tau=tau, eta=eta))

    def build(self) -> SamplerChain:
        """Produce the chain and consume the builder.

        A failed build leaves the builder open, so stages can still be added.

        Raises:
            ConstructionError: If the builder was already consumed or the
                stages do not form a valid chain.
        """
        self._check_open()
        chain = SamplerChain(self._stages, self._params, self._sampling_logger)
        self._built = True
        return chain


def build_chain(
    specs: Iterable[Any],
    params: ChainParams | None = None,
    sampling_logger: SamplingLogger | None = None,
) -> SamplerChain:
    """Build a chain from an ordered list of stage specs.

    Args:
        specs: Stage specs (pydantic models or dicts with a ``type`` key).
        params: Chain parameters; defaults to ``ChainParams()``.
        sampling_logger: Optional per-step diagnostic logger.

    Returns:
        A ready-to-use SamplerChain.

    Raises:
        ConstructionError: If any spec is invalid or the chain is malformed.
    """
    builder = ChainBuilder(params, sampling_logger)
    for spec in parse_stage_specs(list(specs)):
        builder.add(StageRegistry.build(spec))
    return builder.build()
