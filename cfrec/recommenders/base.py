from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass

from ..config import RecommenderConfig
from ..data import RatingStore


@dataclass(frozen=True)
class Prediction:
    value: float
    fallback: bool = False


class RecommenderModel(ABC):
    """A fitted, read-only model. Create a new one to change configuration."""

    config: RecommenderConfig

    @abstractmethod
    def predict_user(
        self,
        user: Hashable,
        items: Iterable[Hashable],
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> dict[Hashable, Prediction]:
        """Predict several items for one user.

        `context` holds the user's revealed ratings (test users); without it the
        user's Train row, if any, is used.
        """

    def predict(
        self,
        user: Hashable,
        item: Hashable,
        *,
        context: Mapping[Hashable, float] | None = None,
    ) -> Prediction | None:
        return self.predict_user(user, [item], context=context).get(item)


class Recommender(ABC):
    def __init__(self, config: RecommenderConfig) -> None:
        self.config = config

    @staticmethod
    def _snapshot(train: RatingStore) -> RatingStore:
        """Frozen store the model can hold; later `put`s on the caller's store don't reach it."""
        if train.frozen:
            return train
        return train.subset(train.users()).freeze()

    @abstractmethod
    def fit(self, train: RatingStore) -> RecommenderModel:
        ...
