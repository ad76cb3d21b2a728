from __future__ import annotations

import logging
import math
from collections.abc import Hashable, Iterable, Mapping
from types import MappingProxyType

from ..config import RecommenderConfig
from ..data import RatingStore
from .base import Prediction, Recommender, RecommenderModel


logger = logging.getLogger(__name__)


class PopularityModel(RecommenderModel):
    """Predicts the item's mean Train rating for every user."""

    def __init__(
        self,
        config: RecommenderConfig,
        *,
        item_means: Mapping[Hashable, float],
        global_mean: float | None,
    ) -> None:
        self.config = config
        self.item_means = MappingProxyType(dict(item_means))
        self.global_mean = global_mean

    def predict_user(
        self,
        user: Hashable,
        items: Iterable[Hashable],
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> dict[Hashable, Prediction]:
        out: dict[Hashable, Prediction] = {}
        for item in items:
            mean = self.item_means.get(item)
            if mean is not None:
                out[item] = Prediction(mean)
            elif self.global_mean is not None:
                out[item] = Prediction(self.global_mean, fallback=True)
        return out


class PopularityRecommender(Recommender):
    def fit(self, train: RatingStore) -> PopularityModel:
        item_means = {i: math.fsum(v for _, v in train.col(i)) / len(train.col_mapping(i)) for i in train.items()}
        global_mean = train.global_mean()
        logger.info(
            "Popularity fit: items=%d ratings=%d global_mean=%s",
            len(item_means),
            len(train),
            "n/a" if global_mean is None else f"{global_mean:.4f}",
        )
        return PopularityModel(self.config, item_means=item_means, global_mean=global_mean)
