"""Closed set of recommender variants selected by `Method`."""

from __future__ import annotations

from collections.abc import Callable

from ..config import Method, RecommenderConfig
from ..data import RatingStore
from .base import Prediction, Recommender, RecommenderModel
from .item_cf import ItemCFModel, ItemCFRecommender
from .popularity import PopularityModel, PopularityRecommender
from .user_cf import UserCFModel, UserCFRecommender


_VARIANTS: dict[Method, Callable[[RecommenderConfig], Recommender]] = {
    Method.POPULAR: PopularityRecommender,
    Method.UBCF: UserCFRecommender,
    Method.IBCF: ItemCFRecommender,
}


def build_recommender(config: RecommenderConfig) -> Recommender:
    return _VARIANTS[config.method](config)


def fit(config: RecommenderConfig, train: RatingStore) -> RecommenderModel:
    return build_recommender(config).fit(train)


__all__ = [
    "ItemCFModel",
    "ItemCFRecommender",
    "PopularityModel",
    "PopularityRecommender",
    "Prediction",
    "Recommender",
    "RecommenderModel",
    "UserCFModel",
    "UserCFRecommender",
    "build_recommender",
    "fit",
]
