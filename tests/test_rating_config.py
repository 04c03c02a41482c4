"""Tests for engine configuration loading."""

from pathlib import Path

import yaml
from structlog.testing import capture_logs

from taste_machine.config.settings import Settings
from taste_machine.rating.config import (
    EloConfig,
    ObjectiveWeights,
    RatingConfig,
    load_rating_config,
)


class TestLoadFromYaml:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = load_rating_config(tmp_path / "nope.yaml")
        assert cfg == RatingConfig()

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_rating_config(path) == RatingConfig()

    def test_partial_override(self, tmp_path: Path) -> None:
        path = tmp_path / "rating.yaml"
        path.write_text(
            yaml.dump(
                {
                    "elo": {"base_k": 24},
                    "selector": {"weights": {"uncertainty": 0.5, "proximity": 0.2}},
                    "recompute": {"mode": "replay"},
                }
            )
        )
        cfg = load_rating_config(path)
        assert cfg.elo.base_k == 24
        assert cfg.elo.super_k == 64
        assert cfg.selector.weights.uncertainty == 0.5
        assert cfg.selector.weights.vote_count == 0.2
        assert cfg.selector.pool_size == 200
        assert cfg.recompute.mode == "replay"

    def test_shipped_config_loads(self) -> None:
        cfg = load_rating_config(Settings().rating_config_path)
        assert cfg.elo.default_mean == 1200
        assert cfg.recent_pairs.cooldown_seconds == 7200
        assert cfg.recompute.mode == "incremental"


class TestDefaults:
    def test_documented_defaults(self) -> None:
        cfg = RatingConfig()
        assert (cfg.elo.default_mean, cfg.elo.default_sigma) == (1200, 400)
        assert (cfg.elo.mean_min, cfg.elo.mean_max) == (0, 3000)
        assert (cfg.elo.sigma_min, cfg.elo.sigma_max) == (10, 1000)
        assert cfg.aesthetic.slider_neutral == 50
        assert cfg.recompute.priorities.fire > cfg.recompute.priorities.super_vote


class TestWarnings:
    def test_weights_not_summing_to_one(self) -> None:
        with capture_logs() as logs:
            ObjectiveWeights(uncertainty=0.9, proximity=0.9)
        assert any(e["event"] == "objective_weights_sum_mismatch" for e in logs)

    def test_super_k_not_larger(self) -> None:
        with capture_logs() as logs:
            EloConfig(base_k=40, super_k=32)
        assert any(e["event"] == "elo_super_k_not_larger" for e in logs)

    def test_defaults_are_quiet(self) -> None:
        with capture_logs() as logs:
            RatingConfig()
        assert logs == []
