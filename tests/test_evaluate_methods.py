from __future__ import annotations

import pandas as pd
import pytest

from cfrec.config import ExperimentConfig, RecommenderConfig, SplitConfig, load_config
from cfrec.data import RatingStore
from cfrec.errors import ConfigError
from cfrec.pipelines.evaluate_methods import run_experiment, run_from_config, summarize


METHODS = [
    RecommenderConfig(method="POPULAR"),
    RecommenderConfig(method="UBCF", similarity_method="pearson", k=10),
    RecommenderConfig(method="IBCF", similarity_method="cosine", k=10),
]


def test_run_experiment_reports_every_fold_and_method(synthetic_store: RatingStore) -> None:
    cfg = SplitConfig(train_proportion=0.8, given=5, folds=2, seed=1)
    results = run_experiment(synthetic_store, cfg, METHODS)

    assert len(results) == 6
    assert set(results["method"]) == {m.label for m in METHODS}
    assert results["coverage"].between(0.0, 1.0).all()
    assert (results["rmse"] >= 0).all()
    assert (results["mae"] >= 0).all()

    summary = summarize(results)
    assert summary["method"].tolist() == [m.label for m in METHODS]
    assert (summary["folds"] == 2).all()


def test_run_experiment_is_reproducible(synthetic_store: RatingStore) -> None:
    cfg = SplitConfig(train_proportion=0.8, given=5, folds=1, seed=3)
    timing = ["fit_seconds", "predict_seconds"]
    a = run_experiment(synthetic_store, cfg, METHODS).drop(columns=timing)
    b = run_experiment(synthetic_store, cfg, METHODS).drop(columns=timing)
    pd.testing.assert_frame_equal(a, b)


def test_run_experiment_needs_methods(synthetic_store: RatingStore) -> None:
    with pytest.raises(ConfigError):
        run_experiment(synthetic_store, SplitConfig(given=5), [])


def test_run_from_config_yaml(tmp_path, synthetic_store: RatingStore) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "rating_scale: {min: 1, max: 5}",
                "evaluation: {train_proportion: 0.75, given: 5, folds: 1, seed: 9}",
                "methods:",
                "  - {method: POPULAR}",
                "  - {method: UBCF, normalize: center, similarity_method: cosine, nn: 8}",
                "logging: {level: WARNING}",
            ]
        )
    )
    cfg = load_config(config_path)
    assert isinstance(cfg, ExperimentConfig)
    assert cfg.methods[1].k == 8
    assert cfg.log_level == "WARNING"

    results = run_from_config(synthetic_store.to_frame(), config_path)
    assert results["method"].tolist() == ["POPULAR", "UBCF(cosine,k=8)"]


def test_load_config_rejects_non_mapping(tmp_path) -> None:
    bad = tmp_path / "config.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(bad)

    wrong_section = tmp_path / "wrong.yaml"
    wrong_section.write_text("evaluation: {given: 0}\n")
    with pytest.raises(ConfigError):
        load_config(wrong_section)


def test_repository_config_is_valid() -> None:
    cfg = load_config()
    assert [m.method.value for m in cfg.methods] == ["POPULAR", "UBCF", "IBCF"]
