"""Train / TestKnown / TestUnknown evaluation splits with `given` revealed ratings per test user."""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterator
from dataclasses import dataclass, field
from fractions import Fraction

import numpy as np
from sklearn import model_selection

from .config import SplitConfig, SplitScheme
from .data import RatingStore
from .errors import SplitError
from .utils import random_state, spawn_rngs


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FoldSummary:
    fold: int
    n_train_users: int
    n_test_users: int
    excluded_users: tuple[Hashable, ...] = field(default_factory=tuple)
    n_train_ratings: int = 0
    n_known_ratings: int = 0
    n_unknown_ratings: int = 0

    @property
    def n_excluded(self) -> int:
        return len(self.excluded_users)


@dataclass(frozen=True)
class Split:
    train: RatingStore
    known: RatingStore
    unknown: RatingStore
    summary: FoldSummary

    @property
    def test_users(self) -> list[Hashable]:
        return self.known.users()


class EvaluationSplitter:
    """Partitions users into train and test, then hides all but `given` ratings of each test user.

    Folds draw from independent child streams of the configured seed, unless an
    explicit generator is injected (then folds consume it in order).
    """

    def __init__(self, cfg: SplitConfig, *, rng: np.random.Generator | None = None) -> None:
        self.cfg = cfg
        self._rng = rng

    def _fold_rngs(self) -> list[np.random.Generator]:
        if self._rng is not None:
            return [self._rng] * self.cfg.folds
        return spawn_rngs(self.cfg.seed, self.cfg.folds)

    def n_train_users(self, n: int) -> int:
        """floor(train_proportion * n) computed exactly, clamped to [1, n - 1]."""
        exact = int(Fraction(repr(self.cfg.train_proportion)) * n)
        return min(max(exact, 1), n - 1)

    def _test_blocks(self, users: list[Hashable], rngs: list[np.random.Generator]) -> list[list[Hashable]]:
        n = len(users)
        if n < 2:
            raise SplitError(f"need at least 2 users to split, got {n}")

        if self.cfg.scheme is SplitScheme.CROSS_VALIDATION:
            if self.cfg.folds > n:
                raise SplitError(f"cannot build {self.cfg.folds} folds from {n} users")
            kfold = model_selection.KFold(
                n_splits=self.cfg.folds,
                shuffle=True,
                random_state=random_state(rngs[0]),
            )
            return [[users[int(j)] for j in test_idx] for _, test_idx in kfold.split(users)]

        n_train = self.n_train_users(n)
        blocks = []
        for rng in rngs:
            _, test_users = model_selection.train_test_split(
                users,
                train_size=n_train,
                random_state=random_state(rng),
            )
            blocks.append(list(test_users))
        return blocks

    def split_fold(
        self,
        store: RatingStore,
        fold: int,
        test_users: list[Hashable],
        rng: np.random.Generator,
    ) -> Split:
        given = self.cfg.given
        test_set = set(test_users)

        train = store.copy_empty()
        known = store.copy_empty()
        unknown = store.copy_empty()

        for u in store.users():
            if u in test_set:
                continue
            for i, v in store.row(u):
                train.put(u, i, v)

        excluded: list[Hashable] = []
        for u in sorted(test_set):
            row = store.row_mapping(u)
            if len(row) < given:
                excluded.append(u)
                continue
            items = sorted(row)
            picked = rng.choice(len(items), size=given, replace=False)
            revealed = {items[int(j)] for j in picked}
            for i in items:
                (known if i in revealed else unknown).put(u, i, row[i])

        summary = FoldSummary(
            fold=fold,
            n_train_users=train.n_users,
            n_test_users=known.n_users,
            excluded_users=tuple(excluded),
            n_train_ratings=len(train),
            n_known_ratings=len(known),
            n_unknown_ratings=len(unknown),
        )
        if excluded:
            logger.warning(
                "fold=%d excluded %d/%d test users with fewer than given=%d ratings",
                fold,
                len(excluded),
                len(test_set),
                given,
            )
        if known.n_users == 0:
            raise SplitError(
                f"fold={fold}: all {len(test_set)} test users have fewer than given={given} ratings"
            )

        logger.info(
            "fold=%d train_users=%d test_users=%d known=%d unknown=%d",
            fold,
            summary.n_train_users,
            summary.n_test_users,
            summary.n_known_ratings,
            summary.n_unknown_ratings,
        )
        return Split(train=train.freeze(), known=known.freeze(), unknown=unknown.freeze(), summary=summary)

    def iter_splits(self, store: RatingStore) -> Iterator[Split]:
        users = store.users()
        rngs = self._fold_rngs()
        blocks = self._test_blocks(users, rngs)
        for fold, (block, rng) in enumerate(zip(blocks, rngs)):
            yield self.split_fold(store, fold, block, rng)

    def split(self, store: RatingStore) -> list[Split]:
        return list(self.iter_splits(store))
