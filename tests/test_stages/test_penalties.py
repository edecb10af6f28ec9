"""Tests for RepetitionPenaltiesStage."""

from __future__ import annotations

import numpy as np
import pytest

from sampler_chain.distribution import Distribution, ValueDomain
from sampler_chain.exceptions import ConstructionError, InvalidTokenError
from sampler_chain.stages import RepetitionPenaltiesStage

_LOGITS = [2.0, -2.0, 1.0, 0.5]


def _stage(**overrides: object) -> RepetitionPenaltiesStage:
    """Create a 4-token penalties stage with eos=1, newline=3, overridable."""
    params: dict[str, object] = {
        "n_vocab": 4,
        "eos_id": 1,
        "newline_id": 3,
        "penalty_last_n": 8,
        "repeat_penalty": 2.0,
    }
    params.update(overrides)
    return RepetitionPenaltiesStage(**params)  # type: ignore[arg-type]


def _by_id(dist: Distribution) -> dict[int, float]:
    return {int(i): float(v) for i, v in zip(dist.ids, dist.logits)}


class TestHistory:
    """Tests for the sliding window maintained by accept()."""

    def test_window_caps_count(self) -> None:
        stage = RepetitionPenaltiesStage(10, -1, -1, penalty_last_n=2, repeat_penalty=1.1)
        for token in (5, 5, 5):
            stage.accept(token)
        assert stage.token_count(5) == 2
        assert stage.history == (5, 5)

    def test_oldest_evicted(self) -> None:
        stage = RepetitionPenaltiesStage(10, -1, -1, penalty_last_n=2, repeat_penalty=1.1)
        for token in (1, 2, 3):
            stage.accept(token)
        assert stage.history == (2, 3)
        assert stage.token_count(1) == 0

    def test_zero_window_records_nothing(self) -> None:
        stage = _stage(penalty_last_n=0)
        stage.accept(2)
        assert stage.history == ()
        assert stage.is_neutral is True

    def test_reset_clears(self) -> None:
        stage = _stage()
        stage.accept(0)
        stage.reset()
        assert stage.history == ()
        assert stage.token_count(0) == 0

    @pytest.mark.parametrize("token", [-1, 4, 100])
    def test_out_of_vocabulary_rejected(self, token: int) -> None:
        with pytest.raises(InvalidTokenError):
            _stage().accept(token)

    def test_apply_does_not_touch_history(self) -> None:
        stage = _stage()
        stage.accept(0)
        stage.apply(Distribution.from_logits(_LOGITS))
        assert stage.history == (0,)


class TestPenalties:
    """Tests for the logit adjustments."""

    def test_repeat_penalty_sign_aware(self) -> None:
        stage = _stage()
        stage.accept(0)
        stage.accept(1)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        np.testing.assert_allclose(dist.logits, [1.0, -4.0, 1.0, 0.5])

    def test_frequency_and_presence(self) -> None:
        stage = _stage(repeat_penalty=1.0, freq_penalty=0.5, presence_penalty=1.0)
        stage.accept(2)
        stage.accept(2)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        # 1.0 - (2 * 0.5 + 1.0)
        np.testing.assert_allclose(dist.logits, [2.0, -2.0, -1.0, 0.5])

    def test_newline_exempt_by_default(self) -> None:
        stage = _stage()
        stage.accept(3)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        assert dist.logits[3] == 0.5

    def test_newline_penalized_when_enabled(self) -> None:
        stage = _stage(penalize_nl=True)
        stage.accept(3)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        assert dist.logits[3] == pytest.approx(0.25)

    def test_eos_exempt_when_ignored(self) -> None:
        stage = _stage(ignore_eos=True)
        stage.accept(1)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        assert dist.logits[1] == -2.0

    def test_eos_penalized_by_default(self) -> None:
        stage = _stage()
        stage.accept(1)
        dist = Distribution.from_logits(_LOGITS)
        stage.apply(dist)
        assert dist.logits[1] == -4.0

    def test_neutral_penalties_noop(self) -> None:
        stage = _stage(repeat_penalty=1.0)
        stage.accept(0)
        dist = Distribution.from_logits(_LOGITS)
        dist.softmax()
        stage.apply(dist)
        assert stage.is_neutral is True
        assert dist.domain is ValueDomain.PROBABILITY

    def test_works_on_reordered_candidates(self) -> None:
        stage = _stage()
        stage.accept(2)
        dist = Distribution.from_logits(_LOGITS)
        dist.sort_descending()
        stage.apply(dist)
        assert _by_id(dist) == {0: 2.0, 1: -2.0, 2: 0.5, 3: 0.5}

    def test_absent_tokens_ignored(self) -> None:
        stage = _stage()
        stage.accept(2)
        dist = Distribution([0, 1], [1.0, 2.0])
        stage.apply(dist)
        np.testing.assert_array_equal(dist.logits, [1.0, 2.0])

    def test_returns_to_logit_domain(self) -> None:
        stage = _stage()
        stage.accept(0)
        dist = Distribution.from_logits(_LOGITS)
        dist.softmax()
        stage.apply(dist)
        assert dist.domain is ValueDomain.LOGIT


class TestConstruction:
    """Tests for parameter validation."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"n_vocab": 0},
            {"penalty_last_n": -1},
            {"repeat_penalty": 0.0},
            {"repeat_penalty": float("inf")},
            {"eos_id": 4},
            {"newline_id": -2},
            {"freq_penalty": float("nan")},
        ],
    )
    def test_invalid_parameters(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ConstructionError):
            _stage(**overrides)

    def test_missing_special_tokens_allowed(self) -> None:
        stage = _stage(eos_id=-1, newline_id=-1)
        assert stage.n_vocab == 4

    def test_describe(self) -> None:
        stage = _stage(repeat_penalty=1.1, freq_penalty=0.2, presence_penalty=0.3)
        assert stage.describe() == "penalties last_n:8 repeat:1.10 freq:0.20 present:0.30"
        assert stage.name == "penalties"
