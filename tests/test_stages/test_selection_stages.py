"""Tests for SoftmaxStage, GreedyStage and DistStage."""

from __future__ import annotations

import numpy as np
import pytest

from sampler_chain.distribution import Distribution, ValueDomain
from sampler_chain.exceptions import ConstructionError, EmptyDistributionError, NumericError
from sampler_chain.stages import DistStage, GreedyStage, MirostatV2Stage, SoftmaxStage


def _draws(stage: DistStage, logits: np.ndarray, n: int) -> list[int]:
    tokens = []
    for _ in range(n):
        dist = Distribution.from_logits(logits)
        stage.apply(dist)
        assert dist.selected_token is not None
        tokens.append(dist.selected_token)
    return tokens


class TestSoftmaxStage:
    """Tests for the normalization stage."""

    def test_normalizes(self, example_logits: np.ndarray) -> None:
        dist = Distribution.from_logits(example_logits)
        SoftmaxStage().apply(dist)
        assert dist.domain is ValueDomain.PROBABILITY
        assert float(np.sum(dist.probs)) == pytest.approx(1.0)

    def test_idempotent(self, example_logits: np.ndarray) -> None:
        dist = Distribution.from_logits(example_logits)
        stage = SoftmaxStage()
        stage.apply(dist)
        first = np.array(dist.probs)
        stage.apply(dist)
        np.testing.assert_array_equal(dist.probs, first)

    def test_not_terminal(self) -> None:
        assert SoftmaxStage.selects_token is False
        assert SoftmaxStage().describe() == "softmax"


class TestGreedyStage:
    """Tests for argmax selection."""

    def test_selects_max(self, example_logits: np.ndarray) -> None:
        dist = Distribution.from_logits(example_logits)
        GreedyStage().apply(dist)
        assert dist.selected_token == 3

    def test_tie_breaks_by_lowest_id(self) -> None:
        dist = Distribution.from_logits([1.0, 3.0, 3.0])
        dist.take([2, 1, 0])
        GreedyStage().apply(dist)
        assert dist.selected_token == 1

    def test_deterministic(self, sample_logits_large_vocab: np.ndarray) -> None:
        results = set()
        for _ in range(5):
            dist = Distribution.from_logits(sample_logits_large_vocab)
            GreedyStage().apply(dist)
            results.add(dist.selected_token)
        assert results == {int(np.argmax(sample_logits_large_vocab))}

    def test_empty_raises(self) -> None:
        with pytest.raises(EmptyDistributionError):
            GreedyStage().apply(Distribution([], []))

    def test_all_neg_inf_raises(self) -> None:
        with pytest.raises(NumericError):
            GreedyStage().apply(Distribution.from_logits([-np.inf, -np.inf]))

    def test_terminal(self) -> None:
        assert GreedyStage.selects_token is True


class TestDistStage:
    """Tests for the random draw."""

    def test_draws_only_live_tokens(self) -> None:
        stage = DistStage(seed=1)
        logits = np.array([-np.inf, 0.0, -np.inf])
        assert set(_draws(stage, logits, 50)) == {1}

    def test_same_seed_same_draws(self, sample_logits_uniform: np.ndarray) -> None:
        a = _draws(DistStage(seed=42), sample_logits_uniform, 20)
        b = _draws(DistStage(seed=42), sample_logits_uniform, 20)
        assert a == b

    def test_reset_replays(self, sample_logits_uniform: np.ndarray) -> None:
        stage = DistStage(seed=42)
        first = _draws(stage, sample_logits_uniform, 10)
        stage.reset()
        assert _draws(stage, sample_logits_uniform, 10) == first

    def test_rollback_restores_generator(self, sample_logits_uniform: np.ndarray) -> None:
        stage = DistStage(seed=5)
        state = stage.checkpoint()
        first = _draws(stage, sample_logits_uniform, 3)
        stage.rollback(state)
        assert _draws(stage, sample_logits_uniform, 3) == first

    def test_scripted_source(self, fixed_source: type) -> None:
        """Draws follow the CDF of the normalized distribution."""
        stage = DistStage(rng=fixed_source(0.1, 0.6))
        logits = np.log(np.array([0.5, 0.5]))
        assert _draws(stage, logits, 2) == [0, 1]

    def test_leaves_distribution_normalized(self, example_logits: np.ndarray) -> None:
        dist = Distribution.from_logits(example_logits)
        DistStage(seed=3).apply(dist)
        assert dist.domain is ValueDomain.PROBABILITY
        assert dist.selected is not None

    def test_negative_seed_rejected(self) -> None:
        with pytest.raises(ConstructionError):
            DistStage(seed=-5)

    def test_describe(self) -> None:
        stage = DistStage(seed=1)
        assert stage.name == "dist"
        assert stage.describe() == "dist seeded"
        assert stage.selects_token is True


class TestRandomSourceOwnership:
    """A random source serves exactly one stage."""

    def test_stage_claims_given_source(self, fixed_source: type) -> None:
        source = fixed_source(0.5)
        stage = DistStage(rng=source)
        assert stage.rng is source
        assert source.owner is stage

    def test_shared_source_rejected(self, fixed_source: type) -> None:
        source = fixed_source(0.5)
        DistStage(rng=source)
        with pytest.raises(ConstructionError, match="already owned"):
            MirostatV2Stage(rng=source)
        with pytest.raises(ConstructionError, match="already owned"):
            DistStage(rng=source)

    def test_seeded_sources_are_private(self) -> None:
        a = DistStage(seed=9)
        b = MirostatV2Stage(seed=9)
        assert a.rng is not b.rng
        assert a.rng.owner is a
        assert b.rng.owner is b
