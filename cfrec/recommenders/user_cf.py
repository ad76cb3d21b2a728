"""User-based collaborative filtering (mean-offset weighted average over the k nearest users)."""

from __future__ import annotations

import logging
import time
from collections.abc import Hashable, Iterable, Mapping
from types import MappingProxyType

from ..config import Normalization, RecommenderConfig
from ..data import RatingStore
from ..neighbors import select_neighbors
from ..normalize import center, center_row, row_mean
from ..similarity import SimilarityEngine, SimilarityMatrix
from .base import Prediction, Recommender, RecommenderModel


logger = logging.getLogger(__name__)


class UserCFModel(RecommenderModel):
    def __init__(
        self,
        config: RecommenderConfig,
        *,
        train: RatingStore,
        sim_space: RatingStore,
        user_means: Mapping[Hashable, float],
        similarities: SimilarityMatrix,
        global_mean: float | None,
    ) -> None:
        self.config = config
        self.k = config.k
        self.train = train
        # Ratings the similarity is computed on: centered rows or raw rows.
        self.sim_space = sim_space
        self.user_means = MappingProxyType(dict(user_means))
        self.similarities = similarities
        self.global_mean = global_mean
        self.engine = SimilarityEngine(config.similarity_method)

    def _user_profile(
        self,
        user: Hashable,
        context: Mapping[Hashable, float] | None,
    ) -> tuple[float | None, Mapping[Hashable, float]]:
        """(mean rating, similarity row) of the user being predicted for."""
        if context:
            mean = row_mean(context)
            vector = center_row(context)[0] if self.config.normalize is Normalization.CENTER else dict(context)
            sims = self.engine.similarities_to(vector, self.sim_space.rows(), self.sim_space.cols(), exclude=user)
            return mean, sims
        if self.train.has_user(user):
            return self.user_means[user], self.similarities.row(user)
        return None, {}

    def neighbors(
        self,
        user: Hashable,
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> list[tuple[Hashable, float]]:
        _, sims = self._user_profile(user, context)
        return select_neighbors(user, sims, self.k) if sims else []

    def predict_user(
        self,
        user: Hashable,
        items: Iterable[Hashable],
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> dict[Hashable, Prediction]:
        mean_u, sims = self._user_profile(user, context)
        neighbors = select_neighbors(user, sims, self.k) if sims else []
        fallback = mean_u if mean_u is not None else self.global_mean

        out: dict[Hashable, Prediction] = {}
        for item in items:
            num = 0.0
            den = 0.0
            for n, s in neighbors:
                r = self.train.get(n, item)
                if r is None:
                    continue
                num += s * (r - self.user_means[n])
                den += abs(s)

            if den > 0.0 and mean_u is not None:
                value = mean_u + num / den
                if self.train.scale is not None:
                    value = self.train.scale.clip(value)
                out[item] = Prediction(value)
            elif fallback is not None:
                out[item] = Prediction(fallback, fallback=True)
        return out


class UserCFRecommender(Recommender):
    def fit(self, train: RatingStore) -> UserCFModel:
        t0 = time.perf_counter()
        train = self._snapshot(train)
        cfg = self.config
        if cfg.normalize is Normalization.CENTER:
            centered = center(train)
            sim_space, user_means = centered.store, centered.means
        else:
            sim_space = train
            user_means = {u: row_mean(train.row_mapping(u)) for u in train.users()}

        engine = SimilarityEngine(cfg.similarity_method)
        similarities = engine.user_similarities(sim_space)

        logger.info(
            "UserCF fit: users=%d items=%d ratings=%d pairs=%d similarity=%s normalize=%s k=%d in %.2fs",
            train.n_users,
            train.n_items,
            len(train),
            similarities.n_pairs // 2,
            cfg.similarity_method.value,
            cfg.normalize.value,
            cfg.k,
            time.perf_counter() - t0,
        )
        return UserCFModel(
            cfg,
            train=train,
            sim_space=sim_space,
            user_means=user_means,
            similarities=similarities,
            global_mean=train.global_mean(),
        )
