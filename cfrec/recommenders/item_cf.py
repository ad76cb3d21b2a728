"""Item-based collaborative filtering over a pruned (top-k per item) similarity matrix."""

from __future__ import annotations

import logging
import time
from collections.abc import Hashable, Iterable, Mapping
from types import MappingProxyType

from ..config import Normalization, RecommenderConfig
from ..data import RatingStore
from ..normalize import center
from ..similarity import SimilarityEngine, SimilarityMatrix
from .base import Prediction, Recommender, RecommenderModel


logger = logging.getLogger(__name__)


class ItemCFModel(RecommenderModel):
    def __init__(
        self,
        config: RecommenderConfig,
        *,
        train: RatingStore,
        similarities: SimilarityMatrix,
        item_means: Mapping[Hashable, float],
        global_mean: float | None,
    ) -> None:
        self.config = config
        self.k = config.k
        self.train = train
        self.similarities = similarities
        self.item_means = MappingProxyType(dict(item_means))
        self.global_mean = global_mean

    def predict_user(
        self,
        user: Hashable,
        items: Iterable[Hashable],
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> dict[Hashable, Prediction]:
        rated = context if context else self.train.row_mapping(user)

        out: dict[Hashable, Prediction] = {}
        for item in items:
            num = 0.0
            den = 0.0
            for j, s in sorted(self.similarities.row(item).items()):
                r = rated.get(j)
                if r is None:
                    continue
                num += s * r
                den += abs(s)

            if den > 0.0:
                value = num / den
                if self.train.scale is not None:
                    value = self.train.scale.clip(value)
                out[item] = Prediction(value)
                continue

            fallback = self.item_means.get(item, self.global_mean)
            if fallback is not None:
                out[item] = Prediction(fallback, fallback=True)
        return out


class ItemCFRecommender(Recommender):
    def fit(self, train: RatingStore) -> ItemCFModel:
        t0 = time.perf_counter()
        train = self._snapshot(train)
        cfg = self.config
        sim_space = center(train).store if cfg.normalize is Normalization.CENTER else train

        engine = SimilarityEngine(cfg.similarity_method)
        full = engine.item_similarities(sim_space)
        pruned = full.prune(cfg.k)

        item_means = {i: train.col_mean(i) for i in train.items()}
        logger.info(
            "ItemCF fit: items=%d ratings=%d pairs=%d kept=%d similarity=%s normalize=%s k=%d in %.2fs",
            train.n_items,
            len(train),
            full.n_pairs // 2,
            pruned.n_pairs,
            cfg.similarity_method.value,
            cfg.normalize.value,
            cfg.k,
            time.perf_counter() - t0,
        )
        return ItemCFModel(
            cfg,
            train=train,
            similarities=pruned,
            item_means=item_means,
            global_mean=train.global_mean(),
        )
