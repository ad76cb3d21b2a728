"""Pearson / cosine similarity over co-rated dimensions, and sparse similarity matrices.

Vectors are plain mappings key -> value (a user's row or an item's column). Only
keys present in both vectors (the co-rated set) take part. Pairs whose score is
undefined are left out of the matrix rather than stored as 0.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Hashable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd

from .config import SimilarityMethod
from .data import RatingStore
from .errors import ConfigError
from .neighbors import select_neighbors


logger = logging.getLogger(__name__)

Vector = Mapping[Hashable, float]
SimilarityFn = Callable[[Vector, Vector], float]


def _co_rated(a: Vector, b: Vector) -> tuple[np.ndarray, np.ndarray]:
    small, large = (a, b) if len(a) <= len(b) else (b, a)
    keys = sorted(k for k in small if k in large)
    xa = np.fromiter((a[k] for k in keys), dtype=np.float64, count=len(keys))
    xb = np.fromiter((b[k] for k in keys), dtype=np.float64, count=len(keys))
    return xa, xb


def _clip(x: float) -> float:
    return min(1.0, max(-1.0, x))


def pearson(a: Vector, b: Vector) -> float:
    """Pearson correlation on the co-rated set using local (co-rated) means.

    NaN when fewer than two co-rated keys or either side has zero variance on them.
    """
    xa, xb = _co_rated(a, b)
    if xa.size < 2:
        return math.nan
    da = xa - xa.mean()
    db = xb - xb.mean()
    den = math.sqrt(float(np.dot(da, da))) * math.sqrt(float(np.dot(db, db)))
    if den == 0.0:
        return math.nan
    return _clip(float(np.dot(da, db)) / den)


def cosine(a: Vector, b: Vector) -> float:
    """Cosine similarity restricted to the co-rated set. NaN when empty or a zero vector."""
    xa, xb = _co_rated(a, b)
    if xa.size == 0:
        return math.nan
    den = math.sqrt(float(np.dot(xa, xa))) * math.sqrt(float(np.dot(xb, xb)))
    if den == 0.0:
        return math.nan
    return _clip(float(np.dot(xa, xb)) / den)


_MEASURES: dict[SimilarityMethod, SimilarityFn] = {
    SimilarityMethod.PEARSON: pearson,
    SimilarityMethod.COSINE: cosine,
}


class SimilarityMatrix:
    """Sparse entity -> {entity -> score} mapping without self-pairs.

    A full matrix is symmetric; a pruned one (top-k per row) generally is not.
    """

    def __init__(self, rows: Mapping[Hashable, Mapping[Hashable, float]] | None = None, *, symmetric: bool = True) -> None:
        self._rows: dict[Hashable, dict[Hashable, float]] = {}
        self.symmetric = bool(symmetric)
        for a, row in (rows or {}).items():
            clean = {b: float(s) for b, s in row.items() if b != a and not math.isnan(s)}
            self._rows[a] = clean

    def _set(self, a: Hashable, b: Hashable, score: float) -> None:
        self._rows.setdefault(a, {})[b] = score

    def get(self, a: Hashable, b: Hashable) -> float:
        row = self._rows.get(a)
        if row is None:
            return math.nan
        return row.get(b, math.nan)

    def row(self, a: Hashable) -> Mapping[Hashable, float]:
        return MappingProxyType(self._rows.get(a, {}))

    def entities(self) -> list[Hashable]:
        return sorted(self._rows)

    @property
    def n_pairs(self) -> int:
        """Stored (ordered) entries; a symmetric pair counts twice."""
        return sum(len(r) for r in self._rows.values())

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SimilarityMatrix):
            return NotImplemented
        return self.symmetric == other.symmetric and self._rows == other._rows

    def prune(self, k: int) -> "SimilarityMatrix":
        """Keep only the top-k neighbours of every row."""
        out = SimilarityMatrix(symmetric=False)
        for a in self.entities():
            for b, s in select_neighbors(a, self._rows[a], k):
                out._set(a, b, s)
            out._rows.setdefault(a, {})
        return out

    @classmethod
    def merge(cls, shards: Iterable["SimilarityMatrix"], *, symmetric: bool = True) -> "SimilarityMatrix":
        """Combine row shards computed for disjoint entity subsets."""
        out = cls(symmetric=symmetric)
        for shard in shards:
            for a, row in shard._rows.items():
                if a in out._rows and out._rows[a]:
                    raise ValueError(f"entity {a!r} appears in more than one shard")
                out._rows[a] = dict(row)
        return out

    def to_frame(self) -> pd.DataFrame:
        rows = [(a, b, s) for a in self.entities() for b, s in sorted(self._rows[a].items())]
        return pd.DataFrame(rows, columns=["source", "target", "similarity"])

    def __repr__(self) -> str:
        return f"SimilarityMatrix(entities={len(self)}, pairs={self.n_pairs}, symmetric={self.symmetric})"


class SimilarityEngine:
    """Computes similarities with one configured measure.

    Candidate pairs come from an inverted index (key -> entities having that key),
    so only entities that share at least one co-rated key are ever compared.
    """

    def __init__(self, method: SimilarityMethod | str = SimilarityMethod.PEARSON) -> None:
        if not isinstance(method, SimilarityMethod):
            try:
                method = SimilarityMethod(str(method).lower())
            except ValueError as exc:
                raise ConfigError(f"unknown similarity_method: {method!r}") from exc
        self.method = method
        self._fn = _MEASURES[method]

    def similarity(self, a: Vector, b: Vector) -> float:
        return self._fn(a, b)

    @staticmethod
    def _candidates(vector: Vector, index: Mapping[Hashable, Iterable[Hashable]]) -> set[Hashable]:
        out: set[Hashable] = set()
        for key in vector:
            out.update(index.get(key, ()))
        return out

    def similarities_to(
        self,
        vector: Vector,
        vectors: Mapping[Hashable, Vector],
        index: Mapping[Hashable, Iterable[Hashable]],
        *,
        exclude: Hashable | None = None,
    ) -> dict[Hashable, float]:
        """Score one (possibly external) vector against every indexed entity it overlaps."""
        out: dict[Hashable, float] = {}
        for other in sorted(self._candidates(vector, index)):
            if other == exclude:
                continue
            s = self._fn(vector, vectors[other])
            if not math.isnan(s):
                out[other] = s
        return out

    def pairwise(
        self,
        vectors: Mapping[Hashable, Vector],
        index: Mapping[Hashable, Iterable[Hashable]],
        *,
        entities: Iterable[Hashable] | None = None,
    ) -> SimilarityMatrix:
        """Similarity matrix over `vectors`.

        With `entities=None` every pair is computed once and mirrored. Otherwise only
        the rows of `entities` are computed, giving a shard that `SimilarityMatrix.merge`
        can combine with shards for the remaining entities.
        """
        t0 = time.perf_counter()
        out = SimilarityMatrix(symmetric=True)
        if entities is None:
            for a in sorted(vectors):
                out._rows.setdefault(a, {})
                va = vectors[a]
                for b in sorted(self._candidates(va, index)):
                    if not b > a:
                        continue
                    s = self._fn(va, vectors[b])
                    if math.isnan(s):
                        continue
                    out._set(a, b, s)
                    out._set(b, a, s)
        else:
            for a in sorted(entities):
                out._rows[a] = self.similarities_to(vectors[a], vectors, index, exclude=a)
        logger.debug(
            "pairwise %s: entities=%d pairs=%d in %.3fs",
            self.method.value,
            len(out),
            out.n_pairs,
            time.perf_counter() - t0,
        )
        return out

    def user_similarities(self, store: RatingStore, **kwargs: Any) -> SimilarityMatrix:
        return self.pairwise(store.rows(), store.cols(), **kwargs)

    def item_similarities(self, store: RatingStore, **kwargs: Any) -> SimilarityMatrix:
        return self.pairwise(store.cols(), store.rows(), **kwargs)
