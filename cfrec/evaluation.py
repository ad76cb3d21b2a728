"""Batch prediction over held-out ratings and rating-accuracy metrics (RMSE / MAE / coverage)."""

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Hashable, Iterable, Iterator
from dataclasses import asdict, dataclass

import pandas as pd

from .data import RatingStore
from .errors import ColdStartWarning, ConfigError
from .recommenders.base import RecommenderModel


logger = logging.getLogger(__name__)


class Predictions:
    """Predicted ratings keyed by (user, item), with the fallback pairs remembered."""

    def __init__(self) -> None:
        self._values: dict[Hashable, dict[Hashable, float]] = {}
        self._fallback: set[tuple[Hashable, Hashable]] = set()

    def add(self, user: Hashable, item: Hashable, value: float, *, fallback: bool = False) -> None:
        self._values.setdefault(user, {})[item] = float(value)
        if fallback:
            self._fallback.add((user, item))
        else:
            self._fallback.discard((user, item))

    def get(self, user: Hashable, item: Hashable) -> float | None:
        row = self._values.get(user)
        return None if row is None else row.get(item)

    def is_fallback(self, user: Hashable, item: Hashable) -> bool:
        return (user, item) in self._fallback

    def users(self) -> list[Hashable]:
        return sorted(self._values)

    def __iter__(self) -> Iterator[tuple[Hashable, Hashable, float]]:
        for u in self.users():
            for i, v in self._values[u].items():
                yield u, i, v

    def __len__(self) -> int:
        return sum(len(r) for r in self._values.values())

    @property
    def fallback_count(self) -> int:
        return len(self._fallback)

    @classmethod
    def merge(cls, parts: Iterable["Predictions"]) -> "Predictions":
        """Combine per-user partitions; a user may appear in only one part."""
        out = cls()
        for part in parts:
            overlap = set(out._values).intersection(part._values)
            if overlap:
                raise ValueError(f"users predicted in more than one partition: {sorted(overlap)[:5]}")
            for u, row in part._values.items():
                out._values[u] = dict(row)
            out._fallback.update(part._fallback)
        return out

    def to_frame(self) -> pd.DataFrame:
        rows = [(u, i, v, (u, i) in self._fallback) for u, i, v in self]
        return pd.DataFrame(rows, columns=["userId", "itemId", "prediction", "fallback"])


def predict_ratings(
    model: RecommenderModel,
    known: RatingStore,
    targets: RatingStore,
    *,
    users: Iterable[Hashable] | None = None,
) -> Predictions:
    """Predict every (user, item) of `targets`, using each user's `known` ratings as context."""
    preds = Predictions()
    for user in sorted(users) if users is not None else targets.users():
        items = [i for i, _ in targets.row(user)]
        context = known.row_mapping(user)
        for item, p in model.predict_user(user, items, context=context).items():
            preds.add(user, item, p.value, fallback=p.fallback)

    if preds.fallback_count:
        warnings.warn(
            f"{preds.fallback_count}/{len(preds)} predictions used a cold-start fallback",
            ColdStartWarning,
            stacklevel=2,
        )
    return preds


@dataclass(frozen=True)
class AccuracyReport:
    rmse: float
    mae: float
    mse: float
    coverage: float
    covered: int
    total: int
    fallback: int

    @property
    def fallback_rate(self) -> float:
        return (self.fallback / self.covered) if self.covered else 0.0

    def as_dict(self) -> dict[str, float | int]:
        out = asdict(self)
        out["fallback_rate"] = self.fallback_rate
        return out


@dataclass(frozen=True)
class MetricAccumulator:
    """Sums that combine with `+` in any order (partial reductions over partitions)."""

    sse: float = 0.0
    sae: float = 0.0
    covered: int = 0
    total: int = 0
    fallback: int = 0

    def __add__(self, other: "MetricAccumulator") -> "MetricAccumulator":
        if not isinstance(other, MetricAccumulator):
            return NotImplemented
        return MetricAccumulator(
            sse=self.sse + other.sse,
            sae=self.sae + other.sae,
            covered=self.covered + other.covered,
            total=self.total + other.total,
            fallback=self.fallback + other.fallback,
        )

    @classmethod
    def from_pairs(
        cls,
        predictions: Predictions,
        actual: RatingStore,
        users: Iterable[Hashable],
    ) -> "MetricAccumulator":
        sq: list[float] = []
        ab: list[float] = []
        total = 0
        fallback = 0
        for u in users:
            for i, r in actual.row(u):
                total += 1
                p = predictions.get(u, i)
                if p is None:
                    continue
                err = p - r
                sq.append(err * err)
                ab.append(abs(err))
                if predictions.is_fallback(u, i):
                    fallback += 1
        return cls(sse=math.fsum(sq), sae=math.fsum(ab), covered=len(sq), total=total, fallback=fallback)

    def report(self) -> AccuracyReport:
        if self.total == 0:
            raise ConfigError("cannot evaluate against an empty set of actual ratings")
        if self.covered:
            mse = self.sse / self.covered
            rmse = math.sqrt(mse)
            mae = self.sae / self.covered
        else:
            mse = rmse = mae = math.nan
        return AccuracyReport(
            rmse=rmse,
            mae=mae,
            mse=mse,
            coverage=self.covered / self.total,
            covered=self.covered,
            total=self.total,
            fallback=self.fallback,
        )


def evaluate(predictions: Predictions, actual: RatingStore) -> AccuracyReport:
    """Compare predictions with the held-out ratings; unpredicted pairs count as coverage misses."""
    if len(actual) == 0:
        raise ConfigError("cannot evaluate against an empty set of actual ratings")
    acc = MetricAccumulator.from_pairs(predictions, actual, actual.users())
    report = acc.report()
    logger.info(
        "evaluate: rmse=%.4f mae=%.4f coverage=%.4f covered=%d/%d fallback=%d",
        report.rmse,
        report.mae,
        report.coverage,
        report.covered,
        report.total,
        report.fallback,
    )
    return report


def evaluate_by_user(predictions: Predictions, actual: RatingStore) -> pd.DataFrame:
    """Per-user accuracy table (one row per user in `actual`)."""
    if len(actual) == 0:
        raise ConfigError("cannot evaluate against an empty set of actual ratings")
    rows = []
    for u in actual.users():
        rep = MetricAccumulator.from_pairs(predictions, actual, [u]).report()
        rows.append({"userId": u, **rep.as_dict()})
    return pd.DataFrame(rows)
