"""Per-user mean centering."""

from __future__ import annotations

import math
from collections.abc import Hashable, Mapping
from dataclasses import dataclass

from .data import RatingStore
from .errors import ConfigError


@dataclass(frozen=True)
class CenteredRatings:
    """Centered store plus the per-user means needed to undo the centering."""

    store: RatingStore
    means: Mapping[Hashable, float]

    def restore(self, user: Hashable, centered_value: float) -> float:
        return centered_value + self.means[user]

    def mean(self, user: Hashable) -> float | None:
        return self.means.get(user)


def row_mean(row: Mapping[Hashable, float]) -> float:
    if not row:
        raise ConfigError("cannot center a user with zero ratings")
    return math.fsum(row.values()) / len(row)


def center_row(row: Mapping[Hashable, float]) -> tuple[dict[Hashable, float], float]:
    """Center a single rating row; returns (centered_row, mean)."""
    mean = row_mean(row)
    return {k: v - mean for k, v in row.items()}, mean


def center(store: RatingStore) -> CenteredRatings:
    """Subtract each user's mean rating from all of that user's ratings."""
    out = RatingStore(scale=None, strict=store.strict)
    means: dict[Hashable, float] = {}
    for user in store.users():
        centered, mean = center_row(store.row_mapping(user))
        means[user] = mean
        for item, value in centered.items():
            out.put(user, item, value)
    return CenteredRatings(store=out.freeze(), means=means)
