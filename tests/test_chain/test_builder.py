"""Tests for ChainBuilder and build_chain()."""

from __future__ import annotations

import numpy as np
import pytest

from sampler_chain.chain import ChainBuilder, ChainParams, SamplerChain, build_chain
from sampler_chain.chain.specs import DistSpec, TopKSpec
from sampler_chain.exceptions import ConstructionError
from sampler_chain.stages import GreedyStage, MirostatStage, RepetitionPenaltiesStage, TopKStage


class TestChainBuilder:
    """Tests for fluent chain construction."""

    def test_add_methods_return_builder(self) -> None:
        builder = ChainBuilder()
        assert builder.add_top_k(40) is builder
        assert builder.add_top_p(0.9).add_min_p(0.05).add_temp(0.8) is builder
        assert len(builder) == 4

    def test_every_stage_variant(self) -> None:
        chain = (
            ChainBuilder()
            .add_penalties(100, 2, 13, 64, repeat_penalty=1.1)
            .add_top_k(40)
            .add_tail_free(0.95)
            .add_typical_p(0.9)
            .add_top_p(0.95)
            .add_min_p(0.05)
            .add_temp_ext(0.8, 0.2, 1.0)
            .add_temp(1.0)
            .add_softmax()
            .add_mirostat(100, seed=1)
            .add_mirostat_v2(seed=1)
            .add_greedy()
            .add_dist(seed=1)
            .build()
        )
        assert [stage.name for stage in chain.stages] == [
            "penalties",
            "top_k",
            "tail_free",
            "typical",
            "top_p",
            "min_p",
            "temp_ext",
            "temp",
            "softmax",
            "mirostat",
            "mirostat_v2",
            "greedy",
            "dist",
        ]
        assert chain.n_vocab == 100

    def test_build_consumes_builder(self) -> None:
        builder = ChainBuilder().add_greedy()
        builder.build()
        with pytest.raises(ConstructionError, match="consumed"):
            builder.build()
        with pytest.raises(ConstructionError, match="consumed"):
            builder.add_top_k(3)

    def test_requires_terminal_stage(self) -> None:
        with pytest.raises(ConstructionError, match="select a token"):
            ChainBuilder().add_top_k(3).add_softmax().build()

    def test_empty_chain_rejected(self) -> None:
        with pytest.raises(ConstructionError, match="at least one stage"):
            ChainBuilder().build()

    def test_vocab_mismatch_rejected(self) -> None:
        builder = ChainBuilder().add_penalties(10, -1, -1, 8, repeat_penalty=1.1)
        builder.add_mirostat(20, seed=1)
        with pytest.raises(ConstructionError, match="vocabulary size"):
            builder.build()

    def test_invalid_parameter_raises_eagerly(self) -> None:
        with pytest.raises(ConstructionError):
            ChainBuilder().add_top_p(1.5)

    def test_add_prebuilt_stage(self) -> None:
        chain = ChainBuilder().add(TopKStage(2)).add(GreedyStage()).build()
        assert len(chain) == 2

    def test_add_rejects_non_stage(self) -> None:
        with pytest.raises(ConstructionError, match="Not a stage"):
            ChainBuilder().add("top_k")  # type: ignore[arg-type]

    def test_add_rejects_repeated_stage(self) -> None:
        stage = RepetitionPenaltiesStage(10, -1, -1, 4, repeat_penalty=1.2)
        builder = ChainBuilder().add(stage)
        with pytest.raises(ConstructionError, match="already added"):
            builder.add(stage)
        assert len(builder) == 1

    def test_add_rejects_stage_owned_by_chain(self) -> None:
        terminal = GreedyStage()
        ChainBuilder().add(terminal).build()
        with pytest.raises(ConstructionError, match="another chain"):
            ChainBuilder().add(terminal)

    def test_failed_build_leaves_builder_open(self) -> None:
        """A chain rejected at build() can be fixed and built again."""
        builder = ChainBuilder().add_top_k(3)
        with pytest.raises(ConstructionError, match="select a token"):
            builder.build()
        chain = builder.add_greedy().build()
        assert chain.describe() == "top-k 3 -> greedy"

    def test_add_spec(self) -> None:
        chain = ChainBuilder().add_spec({"type": "top_k", "k": 2}).add_spec(DistSpec(seed=4)).build()
        assert chain.describe() == "top-k 2 -> dist seeded"

    def test_params_passed_through(self) -> None:
        params = ChainParams().with_no_perf(False)
        chain = ChainBuilder(params).add_greedy().build()
        assert chain.params.no_perf is False


class TestBuildChain:
    """Tests for spec-list construction."""

    def test_from_dicts(self, example_logits: np.ndarray) -> None:
        chain = build_chain(
            [{"type": "top_k", "k": 3}, {"type": "softmax"}, {"type": "greedy"}]
        )
        assert isinstance(chain, SamplerChain)
        assert chain.sample(example_logits) == 3

    def test_from_models(self) -> None:
        chain = build_chain([TopKSpec(k=3), DistSpec(seed=1)])
        assert chain.describe() == "top-k 3 -> dist seeded"

    def test_default_params(self) -> None:
        chain = build_chain([{"type": "greedy"}])
        assert chain.params == ChainParams()
        assert chain.params.no_perf is True

    def test_invalid_spec(self) -> None:
        with pytest.raises(ConstructionError):
            build_chain([{"type": "top_p", "p": 2.0}, {"type": "greedy"}])

    def test_stage_types(self) -> None:
        chain = build_chain(
            [
                {"type": "penalties", "n_vocab": 32, "penalty_last_n": 4, "repeat_penalty": 1.2},
                {"type": "mirostat", "n_vocab": 32, "seed": 2},
            ]
        )
        assert isinstance(chain.stages[0], RepetitionPenaltiesStage)
        assert isinstance(chain.stages[1], MirostatStage)
        assert chain.n_vocab == 32
