"""Tests for the composite aesthetic score and its confidence."""

import pytest

from taste_machine.rating.aesthetic import (
    compute_aesthetic,
    confidence,
    elo_blend_weight,
    elo_component,
    fire_component,
    slider_component,
)
from taste_machine.rating.config import AestheticConfig


class TestComponents:
    @pytest.mark.parametrize(
        "elo, expected",
        [(800, 0.0), (1100, 50.0), (1400, 100.0), (500, 0.0), (2000, 100.0)],
    )
    def test_elo_component_band(self, elo: float, expected: float) -> None:
        assert elo_component(elo) == pytest.approx(expected)

    def test_slider_component_neutral_without_samples(self) -> None:
        assert slider_component(90.0, 0) == 50.0
        assert slider_component(90.0, 1) == 90.0

    def test_fire_component_diminishing(self) -> None:
        assert fire_component(0) == 0.0
        assert fire_component(1) == pytest.approx(50.0)
        assert fire_component(3) == pytest.approx(100.0)
        assert fire_component(100) == 100.0


class TestBlend:
    def test_even_split_when_sparse(self) -> None:
        assert elo_blend_weight(0, 0) == pytest.approx(0.5)

    def test_better_sampled_signal_dominates(self) -> None:
        assert elo_blend_weight(40, 2) > 0.8
        assert elo_blend_weight(1, 30) < 0.2

    def test_fresh_nft_score(self) -> None:
        result = compute_aesthetic(elo_mean=1200, votes=0, slider_mean=50, slider_count=0)
        # (66.67 + 50) / 2
        assert result.score == pytest.approx(58.333, abs=1e-3)
        assert result.elo_weight == pytest.approx(0.5)

    def test_score_bounded(self) -> None:
        result = compute_aesthetic(elo_mean=3000, votes=200, slider_mean=100, slider_count=200, fire_count=50)
        assert result.score == 100.0

    def test_fire_boost_is_small(self) -> None:
        base = compute_aesthetic(1100, 10, 50, 10)
        boosted = compute_aesthetic(1100, 10, 50, 10, fire_count=3)
        assert boosted.score - base.score == pytest.approx(AestheticConfig().fire_boost_max)

    def test_deterministic(self) -> None:
        a = compute_aesthetic(1234.5, 7, 61.2, 4, 2)
        b = compute_aesthetic(1234.5, 7, 61.2, 4, 2)
        assert a == b


class TestConfidence:
    def test_capped_until_minimum_evidence(self) -> None:
        cfg = AestheticConfig()
        assert confidence(50, 0, cfg) == cfg.confidence_cap
        assert confidence(0, 50, cfg) == cfg.confidence_cap

    def test_increasing_and_below_one(self) -> None:
        values = [confidence(n, n) for n in range(0, 200, 5)]
        assert all(b >= a for a, b in zip(values, values[1:]))
        assert max(values) <= AestheticConfig().max_confidence < 1.0

    def test_zero_evidence(self) -> None:
        assert confidence(0, 0) == 0.0
