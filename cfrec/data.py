"""Sparse user x item rating store with row and column views."""

from __future__ import annotations

import logging
import math
from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd

from .config import RatingScaleConfig
from .errors import ConfigError, DataError


logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = ("userId", "itemId", "rating")

_EMPTY: Mapping[Any, float] = MappingProxyType({})


@dataclass(frozen=True)
class RatingScale:
    """Closed interval [low, high] of admissible rating values."""

    low: float = 1.0
    high: float = 5.0

    def __post_init__(self) -> None:
        if not (math.isfinite(self.low) and math.isfinite(self.high)) or self.low >= self.high:
            raise ConfigError(f"invalid rating scale: [{self.low!r}, {self.high!r}]")

    @classmethod
    def from_config(cls, cfg: RatingScaleConfig) -> "RatingScale":
        return cls(low=float(cfg.min), high=float(cfg.max))

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high

    def clip(self, value: float) -> float:
        return min(max(value, self.low), self.high)


@dataclass(frozen=True)
class RatingStats:
    n_users: int
    n_items: int
    n_ratings: int
    density: float
    min_per_user: int
    max_per_user: int
    mean_per_user: float
    min_per_item: int
    max_per_item: int
    mean_per_item: float


class RatingStore:
    """Explicit ratings held as user -> {item -> value} plus the item -> {user -> value} transpose.

    Absence is explicit: an unrated pair is simply missing, never zero. `scale=None`
    disables range validation (used for mean-centered copies).
    """

    def __init__(self, *, scale: RatingScale | None = RatingScale(), strict: bool = True) -> None:
        self.scale = scale
        self.strict = bool(strict)
        self._rows: dict[Hashable, dict[Hashable, float]] = {}
        self._cols: dict[Hashable, dict[Hashable, float]] = {}
        self._n = 0
        self._frozen = False

    # ----- construction -----

    @classmethod
    def from_records(
        cls,
        records: Iterable[tuple[Any, ...]],
        *,
        scale: RatingScale | None = RatingScale(),
        strict: bool = True,
    ) -> "RatingStore":
        """Build from (user, item, rating[, timestamp]) tuples; extra fields are ignored."""
        store = cls(scale=scale, strict=strict)
        for rec in records:
            if len(rec) < 3:
                raise DataError(f"rating record needs (user, item, rating), got {rec!r}")
            store.put(rec[0], rec[1], rec[2])
        return store

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        *,
        scale: RatingScale | None = RatingScale(),
        strict: bool = True,
        user_col: str = "userId",
        item_col: str = "itemId",
        rating_col: str = "rating",
    ) -> "RatingStore":
        """Build from a ratings DataFrame (extra columns such as `timestamp` are ignored)."""
        cols = (user_col, item_col, rating_col)
        missing = [c for c in cols if c not in df.columns]
        if missing:
            raise DataError(f"ratings frame missing columns: {missing}")
        if df[[user_col, item_col, rating_col]].isna().any().any():
            raise DataError("ratings frame contains missing userId/itemId/rating values")

        store = cls(scale=scale, strict=strict)
        users = df[user_col].tolist()
        items = df[item_col].tolist()
        values = df[rating_col].astype("float64").tolist()
        for u, i, v in zip(users, items, values):
            store.put(u, i, v)
        logger.info(
            "RatingStore loaded: users=%d items=%d ratings=%d (rows_in=%d)",
            store.n_users,
            store.n_items,
            len(store),
            len(df),
        )
        return store

    def to_frame(self) -> pd.DataFrame:
        rows = [(u, i, v) for u in self.users() for i, v in self.row(u)]
        return pd.DataFrame(rows, columns=list(REQUIRED_COLUMNS))

    def copy_empty(self) -> "RatingStore":
        return type(self)(scale=self.scale, strict=self.strict)

    # ----- mutation -----

    def put(self, user: Hashable, item: Hashable, value: float) -> None:
        if self._frozen:
            raise RuntimeError("RatingStore is frozen; build a new store instead")
        try:
            v = float(value)
        except (TypeError, ValueError) as exc:
            raise DataError(f"rating for ({user!r}, {item!r}) is not numeric: {value!r}") from exc
        if not math.isfinite(v):
            raise DataError(f"rating for ({user!r}, {item!r}) is not finite: {value!r}")
        if self.scale is not None and not self.scale.contains(v):
            raise DataError(
                f"rating for ({user!r}, {item!r}) outside scale [{self.scale.low}, {self.scale.high}]: {v}"
            )

        row = self._rows.get(user)
        if row is not None and item in row:
            old = row[item]
            if old == v:
                return
            if self.strict:
                raise DataError(f"conflicting duplicate rating for ({user!r}, {item!r}): {old} vs {v}")
        else:
            self._n += 1

        self._rows.setdefault(user, {})[item] = v
        self._cols.setdefault(item, {})[user] = v

    def freeze(self) -> "RatingStore":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ----- lookups -----

    def get(self, user: Hashable, item: Hashable, default: float | None = None) -> float | None:
        row = self._rows.get(user)
        if row is None:
            return default
        return row.get(item, default)

    def row(self, user: Hashable) -> Iterator[tuple[Hashable, float]]:
        return iter(self._rows.get(user, _EMPTY).items())

    def col(self, item: Hashable) -> Iterator[tuple[Hashable, float]]:
        return iter(self._cols.get(item, _EMPTY).items())

    def row_mapping(self, user: Hashable) -> Mapping[Hashable, float]:
        row = self._rows.get(user)
        return _EMPTY if row is None else MappingProxyType(row)

    def col_mapping(self, item: Hashable) -> Mapping[Hashable, float]:
        col = self._cols.get(item)
        return _EMPTY if col is None else MappingProxyType(col)

    def rows(self) -> Mapping[Hashable, Mapping[Hashable, float]]:
        """Read-only user -> {item -> value} view."""
        return MappingProxyType(self._rows)

    def cols(self) -> Mapping[Hashable, Mapping[Hashable, float]]:
        """Read-only item -> {user -> value} view."""
        return MappingProxyType(self._cols)

    def users(self) -> list[Hashable]:
        return sorted(self._rows)

    def items(self) -> list[Hashable]:
        return sorted(self._cols)

    def has_user(self, user: Hashable) -> bool:
        return user in self._rows

    def has_item(self, item: Hashable) -> bool:
        return item in self._cols

    @property
    def n_users(self) -> int:
        return len(self._rows)

    @property
    def n_items(self) -> int:
        return len(self._cols)

    def __len__(self) -> int:
        return self._n

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        row = self._rows.get(key[0])
        return row is not None and key[1] in row

    def __repr__(self) -> str:
        return f"RatingStore(users={self.n_users}, items={self.n_items}, ratings={len(self)})"

    # ----- derived statistics -----

    def user_counts(self) -> dict[Hashable, int]:
        return {u: len(r) for u, r in self._rows.items()}

    def item_counts(self) -> dict[Hashable, int]:
        return {i: len(c) for i, c in self._cols.items()}

    def row_mean(self, user: Hashable) -> float | None:
        row = self._rows.get(user)
        if not row:
            return None
        return float(np.mean(list(row.values())))

    def col_mean(self, item: Hashable) -> float | None:
        col = self._cols.get(item)
        if not col:
            return None
        return float(np.mean(list(col.values())))

    def global_mean(self) -> float | None:
        if self._n == 0:
            return None
        total = math.fsum(v for row in self._rows.values() for v in row.values())
        return total / self._n

    def stats(self) -> RatingStats:
        per_user = np.array(list(self.user_counts().values()), dtype=np.int64)
        per_item = np.array(list(self.item_counts().values()), dtype=np.int64)
        cells = self.n_users * self.n_items
        return RatingStats(
            n_users=self.n_users,
            n_items=self.n_items,
            n_ratings=len(self),
            density=(len(self) / cells) if cells else 0.0,
            min_per_user=int(per_user.min()) if per_user.size else 0,
            max_per_user=int(per_user.max()) if per_user.size else 0,
            mean_per_user=float(per_user.mean()) if per_user.size else 0.0,
            min_per_item=int(per_item.min()) if per_item.size else 0,
            max_per_item=int(per_item.max()) if per_item.size else 0,
            mean_per_item=float(per_item.mean()) if per_item.size else 0.0,
        )

    # ----- derived stores -----

    def subset(self, users: Iterable[Hashable]) -> "RatingStore":
        """New store holding only the given users' ratings."""
        out = self.copy_empty()
        for u in users:
            for i, v in self.row(u):
                out.put(u, i, v)
        return out

    def filter(self, *, min_user_ratings: int = 1, min_item_ratings: int = 1) -> "RatingStore":
        """Drop sparse users and items until every survivor meets both thresholds."""
        if min_user_ratings < 1 or min_item_ratings < 1:
            raise ConfigError("filter thresholds must be >= 1")

        keep = {u: dict(r) for u, r in self._rows.items()}
        while True:
            item_counts: dict[Hashable, int] = {}
            for r in keep.values():
                for i in r:
                    item_counts[i] = item_counts.get(i, 0) + 1
            bad_items = {i for i, c in item_counts.items() if c < min_item_ratings}
            changed = False
            for u in list(keep):
                r = keep[u]
                if bad_items:
                    for i in bad_items.intersection(r):
                        del r[i]
                        changed = True
                if len(r) < min_user_ratings:
                    del keep[u]
                    changed = True
            if not changed:
                break

        out = self.copy_empty()
        for u in sorted(keep):
            for i, v in keep[u].items():
                out.put(u, i, v)
        logger.info(
            "RatingStore filter(min_user=%d, min_item=%d): users %d->%d items %d->%d",
            min_user_ratings,
            min_item_ratings,
            self.n_users,
            out.n_users,
            self.n_items,
            out.n_items,
        )
        return out
