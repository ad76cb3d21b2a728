from __future__ import annotations

import math

import pytest

from cfrec.config import Method, RecommenderConfig
from cfrec.data import RatingStore
from cfrec.errors import ConfigError
from cfrec.recommenders import (
    ItemCFModel,
    PopularityModel,
    UserCFModel,
    build_recommender,
    fit,
)


D_KNOWN = {"X": 5.0, "Z": 4.0}


def test_factory_dispatches_on_method(tiny_train: RatingStore) -> None:
    assert isinstance(fit(RecommenderConfig(method="POPULAR"), tiny_train), PopularityModel)
    assert isinstance(fit(RecommenderConfig(method=Method.UBCF, k=2), tiny_train), UserCFModel)
    assert isinstance(fit(RecommenderConfig(method="ibcf", k=2), tiny_train), ItemCFModel)


def test_popularity_item_means_and_fallback() -> None:
    train = RatingStore.from_records([("A", "X", 4), ("B", "X", 2), ("C", "X", 5), ("A", "Y", 2), ("B", "Y", 1)])
    model = fit(RecommenderConfig(method="POPULAR"), train)

    assert model.item_means["X"] == pytest.approx(11 / 3)
    assert model.item_means["Y"] == pytest.approx(1.5)

    pred = model.predict("D", "Y")
    assert pred.value == pytest.approx(1.5)
    assert not pred.fallback
    assert (pred.value - 2.0) ** 2 == pytest.approx(0.25)

    cold = model.predict("D", "unseen")
    assert cold.fallback
    assert cold.value == pytest.approx(14 / 5)


@pytest.mark.parametrize("similarity_method", ["pearson", "cosine"])
def test_user_cf_worked_example(tiny_train: RatingStore, similarity_method: str) -> None:
    cfg = RecommenderConfig(method="UBCF", normalize="center", similarity_method=similarity_method, k=2)
    model = build_recommender(cfg).fit(tiny_train)

    neighbors = model.neighbors("D", context=D_KNOWN)
    assert [n for n, _ in neighbors] == ["A", "B"]
    assert neighbors[0][1] == pytest.approx(neighbors[1][1])

    pred = model.predict("D", "Y", context=D_KNOWN)
    assert pred.value == pytest.approx(3.5)
    assert not pred.fallback


def test_user_cf_cosine_weights_match_worked_example(tiny_train: RatingStore) -> None:
    cfg = RecommenderConfig(method="UBCF", normalize="center", similarity_method="cosine", k=2)
    model = fit(cfg, tiny_train)
    for _, s in model.neighbors("D", context=D_KNOWN):
        assert s == pytest.approx(0.5 / math.sqrt(0.5))


def test_user_cf_cold_start_fallbacks(tiny_train: RatingStore) -> None:
    model = fit(RecommenderConfig(method="UBCF", k=2), tiny_train)

    # No neighbour rated W: fall back to the user's own mean.
    pred = model.predict("D", "W", context=D_KNOWN)
    assert pred.fallback
    assert pred.value == pytest.approx(4.5)

    # Unknown user without context: global mean.
    pred = model.predict("nobody", "Y")
    assert pred.fallback
    assert pred.value == pytest.approx(3.0)


def test_user_cf_train_user_uses_fitted_similarities(tiny_train: RatingStore) -> None:
    model = fit(RecommenderConfig(method="UBCF", normalize="none", similarity_method="pearson", k=1), tiny_train)
    assert model.similarities.get("A", "B") == pytest.approx(1.0)
    pred = model.predict("A", "Y")
    # mean(A) + (r_BY - mean(B)) = 4 + (1 - 2)
    assert pred.value == pytest.approx(3.0)


def test_item_cf_uses_pruned_neighbourhood(tiny_train: RatingStore) -> None:
    model = fit(RecommenderConfig(method="IBCF", normalize="none", similarity_method="cosine", k=1), tiny_train)
    assert dict(model.similarities.row("Y")).keys() == {"Z"}

    pred = model.predict("D", "Y", context=D_KNOWN)
    assert pred.value == pytest.approx(4.0)
    assert not pred.fallback


def test_item_cf_weighted_average_with_two_neighbours(tiny_train: RatingStore) -> None:
    model = fit(RecommenderConfig(method="IBCF", normalize="none", similarity_method="cosine", k=2), tiny_train)
    s_xy = 18 / math.sqrt(34 * 10)
    s_zy = 14 / math.sqrt(20 * 10)
    expected = (s_xy * 5 + s_zy * 4) / (s_xy + s_zy)
    assert model.predict("D", "Y", context=D_KNOWN).value == pytest.approx(expected)


def test_item_cf_cold_start_fallbacks(tiny_train: RatingStore) -> None:
    model = fit(RecommenderConfig(method="IBCF", k=2), tiny_train)

    unseen = model.predict("D", "W", context=D_KNOWN)
    assert unseen.fallback
    assert unseen.value == pytest.approx(3.0)

    # User with nothing rated: item mean of Y.
    no_overlap = model.predict("nobody", "Y")
    assert no_overlap.fallback
    assert no_overlap.value == pytest.approx(2.0)


def test_cold_item_in_train_is_still_predicted_by_every_variant(tiny_train: RatingStore) -> None:
    for method in ("POPULAR", "UBCF", "IBCF"):
        model = fit(RecommenderConfig(method=method, k=2), tiny_train)
        preds = model.predict_user("D", ["W"], context=D_KNOWN)
        assert "W" in preds
        assert preds["W"].fallback


def test_predictions_are_deterministic(synthetic_store: RatingStore) -> None:
    users = synthetic_store.users()
    train = synthetic_store.subset(users[:30])
    for method in ("UBCF", "IBCF"):
        cfg = RecommenderConfig(method=method, k=5)
        a, b = fit(cfg, train), fit(cfg, train)
        assert a.similarities == b.similarities
        for u in users[30:]:
            ctx = dict(list(synthetic_store.row(u))[:6])
            items = synthetic_store.items()
            pa = a.predict_user(u, items, context=ctx)
            pb = b.predict_user(u, items, context=ctx)
            assert pa == pb
            for p in pa.values():
                assert 1.0 <= p.value <= 5.0


def test_invalid_recommender_config() -> None:
    with pytest.raises(ConfigError):
        RecommenderConfig(k=0)
    with pytest.raises(ConfigError):
        RecommenderConfig(method="SVD")
    with pytest.raises(ConfigError):
        RecommenderConfig(normalize="z-score")
    with pytest.raises(ConfigError):
        RecommenderConfig.from_dict({"method": "UBCF", "k": 3, "nn": 4})
    assert RecommenderConfig.from_dict({"method": "UBCF", "nn": 7}).k == 7


@pytest.mark.parametrize("method", ["POPULAR", "UBCF", "IBCF"])
def test_fitted_model_ignores_later_changes_to_train(method: str) -> None:
    train = RatingStore.from_records([("A", "X", 5), ("A", "Y", 3), ("B", "X", 3), ("B", "Y", 1)])
    model = fit(RecommenderConfig(method=method, k=2), train)
    before = model.predict("A", "Z")

    train.put("B", "Z", 2)
    train.put("C", "Z", 1)

    after = model.predict("A", "Z")
    assert after == before
    assert after.fallback
    assert not train.frozen


@pytest.mark.parametrize("k", [float("inf"), float("nan"), None])
def test_non_finite_k_is_a_config_error(k) -> None:
    with pytest.raises(ConfigError):
        RecommenderConfig(k=k)
